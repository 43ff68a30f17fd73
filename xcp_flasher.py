#!/usr/bin/env python3
# coding: utf-8
"""XCP flasher for OpenBLT bootloaders reachable over TCP

Usage:
  xcp_flasher.py [-d] [-d] <host> <port> <firmware_filename>

Where:
- <host> is the IP address or hostname of the target (or of the serial to TCP bridge in front of it)
- <port> is the TCP port number
- <firmware_filename> is a Motorola S-record file (or an Intel HEX file if its extension is .hex or .ihex)

Options:
-d Enable debug logs (use it twice to also get debug logs from libraries)

Example:
  xcp_flasher.py 192.168.1.100 2101 myfirmware.srec
  -> Connects to 192.168.1.100, port 2101, and programs the myfirmware.srec file in non-volatile memory of the
     microcontroller using OpenBLT.
"""

from logging import DEBUG, INFO
import os
import sys

from domain.common import create_main_logger
from domain.flasher_context import FlasherContext
from domain.xcp.firmware_updater import FirmwareUpdater
from domain.xcp.packet_transport import TransportTarget
from domain.xcp.xcp_master import create_xcp_master_connector
from adapters.firmware_image_bincopy import BincopyFirmwareImage
from adapters.firmware_image_python_intelhex import PythonIntelHexFirmwareImage
from adapters.progressbar_progressbar2 import ProgressBar2Factory
from adapters.progressbar_silent import SilentProgressBarFactory

BANNER = """-------------------------------------------------------------------------
XCP flasher. Performs firmware updates via a TCP connection for a
microcontroller based system that runs the OpenBLT bootloader.
-------------------------------------------------------------------------"""

INTEL_HEX_EXTENSIONS = ('.hex', '.ihex')

logger = None

def get_args(host, port, firmware_filename):
    """@brief Extract command-line arguments
    @note Simplistic built-in version without external dependencies
    """
    return (host, port, firmware_filename)

def create_firmware_image(firmware_filename: str):
    """@brief Select the firmware image reader based on the file extension
    """
    if os.path.splitext(firmware_filename)[1].lower() in INTEL_HEX_EXTENSIONS:
        return PythonIntelHexFirmwareImage()
    return BincopyFirmwareImage()

def main(argv=None) -> int:
    """@brief Run the flasher
    @param argv The command-line arguments (excluding the program name), defaults to sys.argv
    @return The process exit status
    """
    global logger
    print(BANNER)
    debug = False
    debug_libs = False
    argv = list(argv if argv is not None else sys.argv[1:])
    if len(argv) < 3:
        print("Not enough arguments", file=sys.stderr)
        print(__doc__, file=sys.stderr) # Output usage
        return 1
    while len(argv) > 3:
        option = argv.pop(0)
        if option == '-d':
            if not debug:
                debug = True
            else:
                debug_libs = True
        else:
            print(f"Unknown leading option: '{option}'", file=sys.stderr)
            print(__doc__, file=sys.stderr)
            return 1
    (host, port, firmware_filename) = get_args(*argv)
    try:
        target = TransportTarget(host, port)
    except ValueError as e:
        print(f"Invalid target: {e}", file=sys.stderr)
        print(__doc__, file=sys.stderr)
        return 1
    logger = create_main_logger(name="xcp_flasher", log_level=(DEBUG if debug else INFO), also_log_libs=debug_libs)
    if not logger.isEnabledFor(DEBUG):
        progressbar_factory = ProgressBar2Factory
    else:
        progressbar_factory = SilentProgressBarFactory
    flasher_ctx = FlasherContext(name='cli',
                                 progressbar_factory=progressbar_factory,
                                 logger=logger,
                                 firmware_image=create_firmware_image(firmware_filename),
                                 target_connector=create_xcp_master_connector(target))
    logger.info(f'Starting firmware update for "{firmware_filename}" using {target}')
    updater = FirmwareUpdater(context=flasher_ctx, firmware_filename=firmware_filename, target_name=str(target))
    return 0 if updater.run() else 1

if __name__ == "__main__":
    sys.exit(main())
