# coding: utf-8
import pytest

import bincopy

from adapters.firmware_image_bincopy import BincopyFirmwareImage
from domain.ext_adapters_interface.firmware_image_interface import FirmwareImage, ImageInvalidError, ImageIOError, DATA_RECORD_MAX_SIZE

def write_srec_file(path, segments) -> str:
    """@brief Generate an S-record file
    @param path The file to create
    @param segments A list of (address, data) tuples
    @return The filename, as a string
    """
    bin_file = bincopy.BinFile()
    for (address, data) in segments:
        bin_file.add_binary(data, address=address)
    path.write_text(bin_file.as_srec())
    return str(path)

def srec_data_lines(address, data, number_of_data_bytes=32) -> list:
    """@brief Generate the S3 data records for one block of data, without any header or termination record
    """
    bin_file = bincopy.BinFile()
    bin_file.add_binary(data, address=address)
    return [line for line in bin_file.as_srec(number_of_data_bytes=number_of_data_bytes).splitlines() if line.startswith('S3')]

def read_all_records(image: FirmwareImage) -> list:
    records = []
    record = image.next_data_record()
    while record is not None:
        records.append(record)
        record = image.next_data_record()
    return records

def test_bincopy_image_complies_with_interface():
    assert isinstance(BincopyFirmwareImage(), FirmwareImage)

def test_validate(tmp_path):
    image = BincopyFirmwareImage()
    srec_filename = write_srec_file(tmp_path / 'firmware.srec', [(0x1000, b'\x01\x02\x03\x04')])
    hex_file = tmp_path / 'firmware.hex'
    hex_file.write_text(':0400000001020304F2\n:00000001FF\n')
    empty_file = tmp_path / 'empty.srec'
    empty_file.write_text('')

    assert image.validate(srec_filename)
    assert not image.validate(str(hex_file))
    assert not image.validate(str(empty_file))
    assert not image.validate(str(tmp_path / 'missing.srec'))

def test_open_missing_file(tmp_path):
    image = BincopyFirmwareImage()
    with pytest.raises(ImageIOError):
        image.open(str(tmp_path / 'missing.srec'))

def test_parse_two_segments(tmp_path):
    low_segment = bytes(range(0, 100))
    high_segment = bytes(range(0x80, 0x80 + 0x100 // 2)) * 2
    srec_filename = write_srec_file(tmp_path / 'firmware.srec', [(0x1000, low_segment), (0x2f00, high_segment)])
    image = BincopyFirmwareImage()

    # When parsing an image made of two distinct segments
    image.open(srec_filename)
    plan = image.parse()
    records = read_all_records(image)
    image.close()

    # Then the plan should bound all data, gaps not being counted as data
    assert plan.address_low == 0x1000
    assert plan.address_high == 0x3000
    assert plan.total_data_bytes == 100 + 0x100
    assert plan.get_erase_range().get_size() == 0x2000
    # And records should follow the file, never exceeding the maximum record size
    assert all(len(r.get_content()) <= DATA_RECORD_MAX_SIZE for r in records)
    assert [r.start_address for r in records] == sorted(r.start_address for r in records)
    assert records[0].start_address == 0x1000
    assert b''.join(r.get_content() for r in records if r.start_address < 0x2f00) == low_segment
    assert b''.join(r.get_content() for r in records if r.start_address >= 0x2f00) == high_segment

def test_records_follow_file_order(tmp_path):
    srec_file = tmp_path / 'firmware.srec'
    srec_file.write_text('\n'.join(srec_data_lines(0x2000, b'\x22' * 64) + srec_data_lines(0x1000, b'\x11' * 64)) + '\n')
    image = BincopyFirmwareImage()

    # When the file describes high addresses before low addresses
    image.open(str(srec_file))
    plan = image.parse()
    records = read_all_records(image)
    image.close()

    # Then records are returned in the order they appear in the file
    assert [r.start_address for r in records] == [0x2000, 0x2020, 0x1000, 0x1020]
    assert [r.get_content() for r in records] == [b'\x22' * 32] * 2 + [b'\x11' * 32] * 2
    # While the plan still covers the whole image
    assert (plan.address_low, plan.address_high, plan.total_data_bytes) == (0x1000, 0x2040, 128)

def test_large_data_lines_are_split(tmp_path):
    srec_file = tmp_path / 'firmware.srec'
    srec_file.write_text('\n'.join(srec_data_lines(0x4000, bytes(range(100)), number_of_data_bytes=100)) + '\n')
    image = BincopyFirmwareImage()
    image.open(str(srec_file))
    image.parse()

    records = read_all_records(image)

    assert [(r.start_address, r.size) for r in records] == [(0x4000, DATA_RECORD_MAX_SIZE), (0x4000 + DATA_RECORD_MAX_SIZE, 100 - DATA_RECORD_MAX_SIZE)]
    assert b''.join(r.get_content() for r in records) == bytes(range(100))

def test_parse_corrupted_file(tmp_path):
    corrupted_file = tmp_path / 'corrupted.srec'
    corrupted_file.write_text('S1130000GARBAGE\n')
    image = BincopyFirmwareImage()

    # Given a file that looks like an S-record file
    assert image.validate(str(corrupted_file))
    image.open(str(corrupted_file))

    # When parsing it, then it should be rejected
    with pytest.raises(ImageInvalidError):
        image.parse()
    image.close()

def test_parse_file_without_data(tmp_path):
    header_only_file = tmp_path / 'header.srec'
    header_only_file.write_text('S0030000FC\n')
    image = BincopyFirmwareImage()
    image.open(str(header_only_file))
    with pytest.raises(ImageInvalidError):
        image.parse()

def test_next_data_record_requires_parse():
    with pytest.raises(RuntimeError):
        BincopyFirmwareImage().next_data_record()

def test_close_is_idempotent(tmp_path):
    image = BincopyFirmwareImage()
    image.open(write_srec_file(tmp_path / 'firmware.srec', [(0x0, b'\xaa')]))
    image.close()
    image.close()
    assert image.file is None
