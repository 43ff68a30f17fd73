# coding: utf-8
import io

import pytest

from intelhex import IntelHex

from adapters.firmware_image_python_intelhex import PythonIntelHexFirmwareImage
from domain.ext_adapters_interface.firmware_image_interface import FirmwareImage, ImageInvalidError, ImageIOError, DATA_RECORD_MAX_SIZE

def write_hex_file(path, segments) -> str:
    intel_hex = IntelHex()
    for (address, data) in segments:
        intel_hex.puts(address, data)
    with open(path, mode='wt') as f:
        intel_hex.write_hex_file(f)
    return str(path)

def hex_data_lines(address, data, byte_count=16) -> list:
    """@brief Generate the records describing one block of data, without the end of file record
    """
    intel_hex = IntelHex()
    intel_hex.puts(address, data)
    f = io.StringIO()
    intel_hex.write_hex_file(f, byte_count=byte_count)
    return [line + '\n' for line in f.getvalue().splitlines() if line != ':00000001FF']

def read_all_records(image: FirmwareImage) -> list:
    records = []
    record = image.next_data_record()
    while record is not None:
        records.append(record)
        record = image.next_data_record()
    return records

def test_intelhex_image_complies_with_interface():
    assert isinstance(PythonIntelHexFirmwareImage(), FirmwareImage)

def test_validate(tmp_path):
    image = PythonIntelHexFirmwareImage()
    assert image.validate(write_hex_file(tmp_path / 'firmware.hex', [(0x1000, b'\x01')]))
    srec_file = tmp_path / 'firmware.srec'
    srec_file.write_text('S0030000FC\n')
    assert not image.validate(str(srec_file))
    assert not image.validate(str(tmp_path / 'missing.hex'))

def test_parse_two_segments(tmp_path):
    first_segment = bytes(range(0, 150))
    second_segment = b'\x55' * 10
    hex_filename = write_hex_file(tmp_path / 'firmware.hex', [(0x8000, first_segment), (0x9000, second_segment)])
    image = PythonIntelHexFirmwareImage(record_max_size=64)

    # When parsing and reading the whole image
    image.open(hex_filename)
    plan = image.parse()
    records = read_all_records(image)
    image.close()

    # Then there is one record per data line (16 bytes each), and records never span a gap
    assert (plan.address_low, plan.address_high, plan.total_data_bytes) == (0x8000, 0x900a, 160)
    assert [(r.start_address, r.size) for r in records] == [(0x8000 + offset, 16) for offset in range(0, 144, 16)] + [(0x8090, 6), (0x9000, 10)]
    assert b''.join(r.get_content() for r in records[:-1]) == first_segment
    assert records[-1].get_content() == second_segment

def test_records_follow_file_order(tmp_path):
    hex_file = tmp_path / 'firmware.hex'
    hex_file.write_text(''.join(hex_data_lines(0x08001000, b'\x22' * 16) + hex_data_lines(0x08000000, b'\x11' * 16)) + ':00000001FF\n')
    image = PythonIntelHexFirmwareImage()

    # When the file describes high addresses before low addresses (each block with its own extended linear address)
    image.open(str(hex_file))
    plan = image.parse()
    records = read_all_records(image)
    image.close()

    # Then records are returned in the order they appear in the file
    assert [(r.start_address, r.get_content()) for r in records] == [(0x08001000, b'\x22' * 16), (0x08000000, b'\x11' * 16)]
    assert (plan.address_low, plan.address_high, plan.total_data_bytes) == (0x08000000, 0x08001010, 32)

def test_large_data_lines_are_split(tmp_path):
    hex_file = tmp_path / 'firmware.hex'
    hex_file.write_text(''.join(hex_data_lines(0x0100, bytes(range(100)), byte_count=100)) + ':00000001FF\n')
    image = PythonIntelHexFirmwareImage()
    image.open(str(hex_file))
    image.parse()

    records = read_all_records(image)

    assert [(r.start_address, r.size) for r in records] == [(0x0100, DATA_RECORD_MAX_SIZE), (0x0100 + DATA_RECORD_MAX_SIZE, 100 - DATA_RECORD_MAX_SIZE)]
    assert b''.join(r.get_content() for r in records) == bytes(range(100))

def test_parse_corrupted_file(tmp_path):
    corrupted_file = tmp_path / 'corrupted.hex'
    corrupted_file.write_text(':04000000010203\n')
    image = PythonIntelHexFirmwareImage()
    image.open(str(corrupted_file))
    with pytest.raises(ImageInvalidError):
        image.parse()

def test_parse_file_without_data(tmp_path):
    eof_only_file = tmp_path / 'eof.hex'
    eof_only_file.write_text(':00000001FF\n')
    image = PythonIntelHexFirmwareImage()
    image.open(str(eof_only_file))
    with pytest.raises(ImageInvalidError):
        image.parse()

def test_open_missing_file(tmp_path):
    with pytest.raises(ImageIOError):
        PythonIntelHexFirmwareImage().open(str(tmp_path / 'missing.hex'))
