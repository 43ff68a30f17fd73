# coding: utf-8
"""@brief Module providing context for flasher code
"""

from domain.deadline_clock import DeadlineClock
from domain.ext_adapters_interface.progressbar_interface import ProgressBarInterface, ProgressBarFactoryInterface
from domain.ext_adapters_interface.firmware_image_interface import FirmwareImage

class FlasherContext:
    """@brief Flasher context container, including handlers for UI (logger, progressbar) and for firmware and target access
    @note This class is used for dependency injection
    """

    def __init__(self, name: str, progressbar_factory: ProgressBarFactoryInterface, logger, firmware_image: FirmwareImage, target_connector, clock: DeadlineClock = None):
        """@brief Construct a Flasher context container
        @param name The name of the context
        @param progressbar_factory A factory generating progress bar instances
        @param logger A logger to use
        @param firmware_image The firmware image source to read data from
        @param target_connector A callback without argument, opening the connection to the remote target and returning an XCP master for it
        @param clock The time source used for delays between connection attempts
        """
        self.name = name
        self.progressbar_factory = progressbar_factory
        self.logger = logger
        if not isinstance(firmware_image, FirmwareImage):
            raise TypeError("firmware_image argument does not implement FirmwareImage")
        self.firmware_image = firmware_image
        if not callable(target_connector):
            raise TypeError("target_connector argument is not callable")
        self._target_connector = target_connector
        self.clock = clock if clock is not None else DeadlineClock()

    def create_progress_bar(self, name: str, min_value: int, max_value: int, *args, **kwargs) -> ProgressBarInterface:
        """@brief Construct a progress bar based on min and max values
        @param name The name of the progress bar
        @param min_value The minimum value for progress display (corresponds to 0% progress)
        @param max_value The maximum value for progress display (corresponds to 100% progress)
        @return The Progress bar that has been created
        @note All other arguments are to be passed as are to the ProgressBar contructor
        """
        return self.progressbar_factory.create(name=name, min_value=min_value, max_value=max_value, *args, **kwargs)

    def connect_to_target(self):
        """@brief Open the connection to the remote target, using the provided target_connector

        @return An XCP master (see domain.xcp.xcp_master.XcpMaster) whose transport is connected
        """
        return self._target_connector()
