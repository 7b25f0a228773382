"""
Tests for the SHX index reader.
"""

import struct

import pytest

from geoloader.core.errors import IndexOutOfBoundsError, InvalidHeaderError
from geoloader.core.readers.shx import (
    ShxIndexEntry,
    get_record_count,
    get_record_location,
    read_header,
    read_offsets,
)


def _shx(entries, file_code: int = 9994) -> bytes:
    body = b"".join(struct.pack(">ii", offset, length) for offset, length in entries)
    header = struct.pack(">7i", file_code, 0, 0, 0, 0, 0, (100 + len(body)) // 2)
    header += struct.pack("<ii", 1000, 1) + bytes(64)
    return header + body


class TestReadHeader:
    """Tests for header validation."""

    def test_returns_file_length_words(self) -> None:
        """Test that the file length at byte 24 is returned."""
        assert read_header(_shx([(50, 20)])) == 54

    def test_rejects_wrong_file_code(self) -> None:
        """Test that a file code other than 9994 is rejected."""
        with pytest.raises(InvalidHeaderError) as exc_info:
            read_header(_shx([], file_code=1234))
        assert exc_info.value.error_code == "INVALID_HEADER"
        assert exc_info.value.details["file_code"] == 1234

    def test_rejects_short_buffer(self) -> None:
        """Test that a buffer shorter than the header is rejected."""
        with pytest.raises(InvalidHeaderError):
            read_header(b"\x00" * 40)


class TestReadOffsets:
    """Tests for reading index entries."""

    def test_single_entry_is_doubled(self) -> None:
        """Test the raw word pair (50, 20) becomes (100, 40) bytes."""
        assert read_offsets(_shx([(50, 20)])) == [(100, 40)]

    def test_entries_are_named_tuples(self) -> None:
        """Test entries expose offset_bytes and length_bytes."""
        entry = read_offsets(_shx([(50, 20)]))[0]
        assert isinstance(entry, ShxIndexEntry)
        assert entry.offset_bytes == 100
        assert entry.length_bytes == 40

    @pytest.mark.parametrize("count", [0, 1, 5, 37])
    def test_count_matches_buffer_length(self, count: int) -> None:
        """Test offsets length equals the record count derived from the size."""
        buf = _shx([(50 + 14 * i, 10) for i in range(count)])
        assert len(read_offsets(buf)) == get_record_count(buf) == (len(buf) - 100) // 8 == count

    def test_trailing_partial_entry_is_ignored(self) -> None:
        """Test that a truncated last entry does not produce a record."""
        buf = _shx([(50, 20), (64, 20)])[:-3]
        assert read_offsets(buf) == [(100, 40)]


class TestGetRecordLocation:
    """Tests for constant-time index lookups."""

    def test_lookup_matches_read_offsets(self) -> None:
        """Test lookup agrees with the full read."""
        buf = _shx([(50, 20), (64, 6), (71, 10)])
        for index, entry in enumerate(read_offsets(buf)):
            assert get_record_location(buf, index) == entry

    def test_index_past_end_raises(self) -> None:
        """Test that an index beyond the last entry raises."""
        buf = _shx([(50, 20)])
        with pytest.raises(IndexOutOfBoundsError) as exc_info:
            get_record_location(buf, 1)
        assert exc_info.value.details["record_count"] == 1

    def test_negative_index_raises(self) -> None:
        """Test that negative indices are rejected."""
        with pytest.raises(IndexOutOfBoundsError):
            get_record_location(_shx([(50, 20)]), -1)

    def test_out_of_bounds_is_an_index_error(self) -> None:
        """Test the error can be caught as a builtin IndexError."""
        with pytest.raises(IndexError):
            get_record_location(_shx([]), 0)
