#!/usr/bin/env python3
# coding: utf-8
"""@brief Firmware update sequence towards an OpenBLT bootloader

The sequence is fixed: check, open and parse the firmware image, connect to the target, start a programming session,
erase the memory range covered by the image, program all data records, stop the programming session, then reset
the target. Only the connection to the bootloader is retried (forever, as the target may need a manual reset to
enter its bootloader), any other failure aborts the update.
"""

from contextlib import contextmanager
from enum import Enum
from typing import List

from domain.ext_adapters_interface.firmware_image_interface import ImageError, ImageInvalidError, UpdatePlan
from domain.flasher_context import FlasherContext
from domain.xcp.packet_transport import TransportError, ReceiveTimeoutError
from domain.xcp.xcp_commands import ProtocolRejectedError

CONNECT_RETRY_DELAY_MS = 20

UPDATE_ERRORS = (ImageError, TransportError, ProtocolRejectedError)

class UpdateStep(Enum):
    VALIDATE_IMAGE = 'validate image'
    OPEN_IMAGE = 'open image'
    PARSE_IMAGE = 'parse image'
    OPEN_TRANSPORT = 'open transport'
    CONNECT_DEVICE = 'connect device'
    START_SESSION = 'start session'
    ERASE = 'erase'
    PROGRAM_LOOP = 'program loop'
    STOP_SESSION = 'stop session'
    RESET_AND_DISCONNECT = 'reset and disconnect'
    CLOSE_ALL = 'close all'
    DONE = 'done'

class FirmwareUpdater:
    """@brief Runs the firmware update sequence, once
    """
    def __init__(self, context: FlasherContext, firmware_filename: str, target_name: str):
        """@brief Constructor
        @param context The flasher context (logger, progress bars, firmware image, target connector and clock)
        @param firmware_filename The firmware file to program
        @param target_name A human-readable description of the target, for logs
        """
        self.context = context
        self.firmware_filename = firmware_filename
        self.target_name = target_name
        self.current_step = None
        self.completed_steps: List[UpdateStep] = []
        self.plan: UpdatePlan = None
        self.connect_attempts = 0
        self._master = None
        self._image_opened = False
        self._device_connected = False
        self._reset_attempted = False

    @contextmanager
    def _step(self, step: UpdateStep, description: str):
        """@brief Wrap one step of the sequence, logging its outcome
        @param step The step being run
        @param description The text describing this step in logs
        """
        self.current_step = step
        self.context.logger.info(f'{description}...')
        try:
            yield
        except Exception:
            self.context.logger.error(f'{description}... ERROR')
            raise
        self.context.logger.info(f'{description}... OK')
        self.completed_steps.append(step)

    def run(self) -> bool:
        """@brief Run the whole update sequence
        @return True if the target has been successfully updated

        @note Errors related to the firmware file, the connection or the target are logged and result in a False return value.
              Any other exception is propagated once all resources have been released
        """
        succeeded = False
        try:
            self._prepare_image()
            self._update_target()
            succeeded = True
        except UPDATE_ERRORS as e:
            self.context.logger.error(f'Firmware update failed during step "{self.current_step.value}": {e}')
        finally:
            self._close_all()
        if succeeded:
            self.current_step = UpdateStep.DONE
            self.context.logger.info('Firmware successfully updated!')
        return succeeded

    def _prepare_image(self) -> None:
        image = self.context.firmware_image
        with self._step(UpdateStep.VALIDATE_IMAGE, f'Checking formatting of firmware file "{self.firmware_filename}"'):
            if not image.validate(self.firmware_filename):
                raise ImageInvalidError(f'File "{self.firmware_filename}" is not a valid firmware file')
        with self._step(UpdateStep.OPEN_IMAGE, f'Opening firmware file "{self.firmware_filename}"'):
            self._image_opened = True   # From now on, the image is closed on exit, even if opening fails midway
            image.open(self.firmware_filename)
        with self._step(UpdateStep.PARSE_IMAGE, f'Parsing firmware file "{self.firmware_filename}"'):
            self.plan = image.parse()
        self.context.logger.info(f'-> Lowest memory address:  {self.plan.address_low}')
        self.context.logger.info(f'-> Highest memory address: {self.plan.address_high}')
        self.context.logger.info(f'-> Total data bytes: {self.plan.total_data_bytes}')

    def _update_target(self) -> None:
        with self._step(UpdateStep.OPEN_TRANSPORT, f'Connecting to {self.target_name}'):
            self._master = self.context.connect_to_target()
        with self._step(UpdateStep.CONNECT_DEVICE, 'Connecting to bootloader'):
            self._connect_device()
        with self._step(UpdateStep.START_SESSION, 'Initializing programming session'):
            self._master.start_programming_session()
        erase_range = self.plan.get_erase_range()
        with self._step(UpdateStep.ERASE, f'Erasing {erase_range.get_size()} bytes starting at {self.plan.address_low}'):
            self._master.clear_memory(erase_range.start_address, erase_range.get_size())
        with self._step(UpdateStep.PROGRAM_LOOP, 'Programming data. Please wait'):
            self._program_all_records()
        with self._step(UpdateStep.STOP_SESSION, 'Finishing programming session'):
            self._master.stop_programming_session()
        with self._step(UpdateStep.RESET_AND_DISCONNECT, 'Performing software reset'):
            self._reset_attempted = True
            self._master.reset_and_disconnect()

    def _connect_device(self) -> None:
        """@brief Connect to the bootloader, waiting for as long as needed for it to answer

        @note Only a missing reply triggers a new attempt, a rejection or a broken connection is a failure
        """
        self.connect_attempts = 0
        while True:
            self.connect_attempts += 1
            try:
                self._master.connect()
                break
            except ReceiveTimeoutError:
                if self.connect_attempts == 1:
                    self.context.logger.warning('TIMEOUT, reset your microcontroller to start its bootloader...')
                self.context.clock.delay_ms(CONNECT_RETRY_DELAY_MS)
        self._device_connected = True
        if self.connect_attempts > 1:
            self.context.logger.debug(f'Bootloader answered after {self.connect_attempts} connection attempts')

    def _program_all_records(self) -> None:
        """@brief Send all data records of the firmware image, in the order they come from the image
        """
        image = self.context.firmware_image
        programmed_bytes = 0
        with self.context.create_progress_bar('Programming', min_value=0, max_value=self.plan.total_data_bytes, show_eta=True) as progress:
            record = image.next_data_record()
            while record is not None:
                self._master.program_data(record.start_address, record.get_content())
                programmed_bytes += record.size
                progress.update(programmed_bytes)
                record = image.next_data_record()

    def _close_all(self) -> None:
        """@brief Release the connection to the target and the firmware image, whatever step we stopped at

        @note Errors during the final disconnection are logged but not raised, so that they do not hide the initial failure
        """
        self.current_step = UpdateStep.CLOSE_ALL
        try:
            if self._master is not None:
                try:
                    if self._device_connected and not self._reset_attempted and self._master.is_connected():
                        try:
                            self._master.disconnect()
                        except UPDATE_ERRORS as e:
                            self.context.logger.warning(f'Could not disconnect from bootloader: {e}')
                finally:
                    self._master.close()
                    self._master = None
                    self.context.logger.info(f'Closing connection to {self.target_name}')
        finally:
            if self._image_opened:
                self._image_opened = False
                self.context.firmware_image.close()
                self.context.logger.info(f'Closed firmware file "{self.firmware_filename}"')
        self.completed_steps.append(UpdateStep.CLOSE_ALL)
