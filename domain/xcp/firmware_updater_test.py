# coding: utf-8
import pytest

from adapters.mock_clock import MockClock
from adapters.mock_firmware_image import MockFirmwareImage
from adapters.mock_logger import MockLogger, ERROR, WARNING, INFO, DEBUG
from adapters.mock_progressbar import MockProgressBarFactory
from domain.ext_adapters_interface.firmware_image_interface import UpdatePlan, ImageInvalidError, ImageIOError
from domain.flasher_context import FlasherContext
from domain.mcu_addressing import MCULocatedLogicalDataChunk
from domain.xcp.firmware_updater import FirmwareUpdater, UpdateStep, CONNECT_RETRY_DELAY_MS
from domain.xcp.mock_stream_device import MockStreamDevice
from domain.xcp.mock_xcp_master import MockXcpMaster
from domain.xcp.mock_xcp_slave import EmulatedXcpSlave
from domain.xcp.packet_transport import TransportTarget, TransportConnectError, ReceiveTimeoutError, SendError
from domain.xcp.xcp_commands import ProtocolRejectedError
from domain.xcp.xcp_master import create_xcp_master_connector

ALL_STEPS = [UpdateStep.VALIDATE_IMAGE, UpdateStep.OPEN_IMAGE, UpdateStep.PARSE_IMAGE, UpdateStep.OPEN_TRANSPORT,
             UpdateStep.CONNECT_DEVICE, UpdateStep.START_SESSION, UpdateStep.ERASE, UpdateStep.PROGRAM_LOOP,
             UpdateStep.STOP_SESSION, UpdateStep.RESET_AND_DISCONNECT, UpdateStep.CLOSE_ALL]

SAMPLE_RECORDS = [MCULocatedLogicalDataChunk(0x0000, b'A' * 64), MCULocatedLogicalDataChunk(0x0080, b'B' * 64)]

class UncaughtException(Exception):
    """@brief Void but unknown exception used to be propagated to caller
    """
    pass

class UpdaterTestBench:
    """@brief All fakes needed to run a FirmwareUpdater
    """
    def __init__(self, records=SAMPLE_RECORDS, plan: UpdatePlan = None, master: MockXcpMaster = None, target_connector=None,
                 clock: MockClock = None):
        self.image = MockFirmwareImage(records, plan=plan)
        self.master = master if master is not None else MockXcpMaster()
        self.logger = MockLogger(DEBUG)
        self.progressbar_factory = MockProgressBarFactory()
        self.clock = clock if clock is not None else MockClock()
        self.connector_calls = 0
        if target_connector is None:
            target_connector = self._connect
        self.context = FlasherContext('test',
                                      progressbar_factory=self.progressbar_factory,
                                      logger=self.logger,
                                      firmware_image=self.image,
                                      target_connector=target_connector,
                                      clock=self.clock)
        self.updater = FirmwareUpdater(context=self.context, firmware_filename='firmware.srec', target_name='192.168.1.100:2101')

    def _connect(self):
        self.connector_calls += 1
        return self.master

def test_end_to_end_update():
    bench = UpdaterTestBench(plan=UpdatePlan(address_low=0x0000, address_high=0x0100, total_data_bytes=128))

    # When running an update where the target acknowledges everything
    result = bench.updater.run()

    # Then all steps should have completed in order
    assert result
    assert bench.updater.completed_steps == ALL_STEPS
    assert bench.updater.current_step == UpdateStep.DONE
    assert bench.master.operations_history == ['connect', 'start_programming_session', 'clear_memory',
                                               'program_data', 'program_data',
                                               'stop_programming_session', 'reset_and_disconnect']
    assert bench.master.erased_range == (0x0000, 0x0100)
    assert bench.master.programmed_data == {0x0000: b'A' * 64, 0x0080: b'B' * 64}
    # And resources should have been released once
    assert bench.master.close_count == 1
    assert bench.image.close_count == 1
    # And success should have been reported once, with a progress bar reaching the total size
    assert bench.logger.get_messages(INFO).count('Firmware successfully updated!') == 1
    assert bench.logger.get_messages(ERROR) == []
    (progress_bar,) = bench.progressbar_factory.created_bars
    assert progress_bar.values_history == [64, 128]
    assert progress_bar.finished

@pytest.mark.parametrize('failing_operation, failing_step', [
    ('start_programming_session', UpdateStep.START_SESSION),
    ('clear_memory', UpdateStep.ERASE),
    ('program_data', UpdateStep.PROGRAM_LOOP),
    ('stop_programming_session', UpdateStep.STOP_SESSION),
    ('reset_and_disconnect', UpdateStep.RESET_AND_DISCONNECT),
])
@pytest.mark.parametrize('failure', [ProtocolRejectedError('Slave rejected command'),
                                     ReceiveTimeoutError('No reply'),
                                     SendError('Broken pipe')])
def test_fail_fast_on_session_steps(failing_operation, failing_step, failure):
    bench = UpdaterTestBench()
    bench.master.failures[failing_operation] = failure

    # When one of the session steps fails
    result = bench.updater.run()

    # Then the update is reported as failed
    assert not result
    assert bench.logger.get_messages(INFO).count('Firmware successfully updated!') == 0
    assert any('ERROR' in message for message in bench.logger.get_messages(ERROR))
    # And no later step was run
    failing_index = ALL_STEPS.index(failing_step)
    assert bench.updater.completed_steps == ALL_STEPS[:failing_index] + [UpdateStep.CLOSE_ALL]
    operations_before_cleanup = bench.master.operations_history
    if failing_step != UpdateStep.RESET_AND_DISCONNECT:
        # The session might still be open on the target side
        assert operations_before_cleanup[-1] == 'disconnect'
        operations_before_cleanup = operations_before_cleanup[:-1]
    else:
        assert 'disconnect' not in operations_before_cleanup
    assert operations_before_cleanup[-1] == failing_operation
    assert operations_before_cleanup.count(failing_operation) == 1
    # And both the connection and the image were closed exactly once
    assert bench.master.close_count == 1
    assert bench.image.close_count == 1

def test_unbounded_connect_retry():
    failed_connect_attempts = 25
    bench = UpdaterTestBench(master=MockXcpMaster(connect_timeouts=failed_connect_attempts))

    # When the bootloader only answers after many connection attempts
    result = bench.updater.run()

    # Then the update should go on normally
    assert result
    assert bench.updater.completed_steps == ALL_STEPS
    assert bench.updater.connect_attempts == failed_connect_attempts + 1
    assert bench.master.operations_history.count('connect') == failed_connect_attempts + 1
    assert bench.clock.delays_history == [CONNECT_RETRY_DELAY_MS] * failed_connect_attempts
    # And the operator should have been asked (once) to reset the target
    waiting_prompts = [message for message in bench.logger.get_messages(WARNING) if 'reset your microcontroller' in message]
    assert len(waiting_prompts) == 1

def test_connect_rejection_is_not_retried():
    bench = UpdaterTestBench()
    bench.master.failures['connect'] = ProtocolRejectedError('Slave rejected CONNECT')

    assert not bench.updater.run()

    assert bench.master.operations_history == ['connect']   # No retry, and no disconnect as the session never opened
    assert bench.clock.delays_history == []
    assert bench.master.close_count == 1
    assert bench.image.close_count == 1

def test_erase_covers_whole_image_range():
    records = [MCULocatedLogicalDataChunk(0x1000, b'\x11' * 0x400), MCULocatedLogicalDataChunk(0x2c00, b'\x22' * 0x400)]
    bench = UpdaterTestBench(records=records, plan=UpdatePlan(address_low=0x1000, address_high=0x3000, total_data_bytes=0x800))

    assert bench.updater.run()

    # The gap between records should be erased too
    assert bench.master.erased_range == (0x1000, 0x2000)
    assert bench.master.operations_history.count('clear_memory') == 1

def test_invalid_image_aborts_before_any_connection():
    bench = UpdaterTestBench()
    bench.image.is_valid = False

    assert not bench.updater.run()

    assert bench.connector_calls == 0
    assert bench.image.opened_path is None
    assert bench.image.close_count == 0
    assert bench.updater.completed_steps == [UpdateStep.CLOSE_ALL]

@pytest.mark.parametrize('failing_method, failure, failing_step', [
    ('open', ImageIOError('Permission denied'), UpdateStep.OPEN_IMAGE),
    ('parse', ImageInvalidError('Bad checksum'), UpdateStep.PARSE_IMAGE),
])
def test_image_failures_abort_before_any_connection(failing_method, failure, failing_step):
    bench = UpdaterTestBench()
    bench.image.failures[failing_method] = failure

    assert not bench.updater.run()

    assert bench.connector_calls == 0
    assert bench.master.operations_history == []
    assert bench.image.close_count == 1
    assert bench.updater.completed_steps == ALL_STEPS[:ALL_STEPS.index(failing_step)] + [UpdateStep.CLOSE_ALL]

def test_transport_connection_failure():
    def refusing_connector():
        raise TransportConnectError('Connection refused')

    bench = UpdaterTestBench(target_connector=refusing_connector)

    assert not bench.updater.run()

    assert bench.updater.completed_steps == ALL_STEPS[:ALL_STEPS.index(UpdateStep.OPEN_TRANSPORT)] + [UpdateStep.CLOSE_ALL]
    assert bench.image.close_count == 1

def test_unknown_exception_propagates_after_cleanup():
    bench = UpdaterTestBench()
    bench.master.failures['clear_memory'] = UncaughtException('Unexpected exception')

    # When an unexpected exception is raised
    with pytest.raises(UncaughtException):
        bench.updater.run()

    # Then resources should still have been released
    assert bench.master.operations_history[-1] == 'disconnect'
    assert bench.master.close_count == 1
    assert bench.image.close_count == 1

def test_cleanup_errors_do_not_mask_initial_failure():
    bench = UpdaterTestBench()
    bench.master.failures['stop_programming_session'] = ProtocolRejectedError('Slave rejected PROGRAM')
    bench.master.failures['disconnect'] = ReceiveTimeoutError('No reply to DISCONNECT')

    assert not bench.updater.run()

    assert any('Could not disconnect' in message for message in bench.logger.get_messages(WARNING))
    assert any('stop session' in message for message in bench.logger.get_messages(ERROR))
    assert bench.master.close_count == 1
    assert bench.image.close_count == 1

def test_update_against_emulated_bootloader():
    clock = MockClock()
    slave = EmulatedXcpSlave(max_cto_pgm=8, silent_connect_count=3)
    devices = []

    def fake_device_factory(url):
        devices.append(MockStreamDevice(clock=clock, response_handler=slave))
        return devices[-1]

    target = TransportTarget('192.168.1.100', 2101)
    records = [MCULocatedLogicalDataChunk(0x0400, bytes(range(64))), MCULocatedLogicalDataChunk(0x0440, bytes(range(64, 100)))]
    bench = UpdaterTestBench(records=records,
                             target_connector=create_xcp_master_connector(target, clock=clock, device_factory=fake_device_factory),
                             clock=clock)

    # When updating a bootloader that needs some time before answering
    result = bench.updater.run()

    # Then the firmware should have been written and the target reset
    assert result
    assert bytes(slave.flash[0x0400:0x0400 + 100]) == bytes(range(100))
    assert slave.erased_ranges == [(0x0400, 100)]
    assert slave.was_reset
    assert len(devices) == 1
    assert devices[0].close_count == 1
    # And retries should have been paced on the clock shared with the transport
    assert bench.clock is clock
    assert clock.delays_history == [CONNECT_RETRY_DELAY_MS] * 3
