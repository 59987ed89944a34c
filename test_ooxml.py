import io
import zipfile
from unittest.mock import patch

import pytest

from ingest.context import DecodeContext, SharedStringTable
from ingest.errors import ContainerError, EmptyInputError, NotFoundError
from ingest.ooxml import column_index, read_xlsx, resolve_sheet_part
from ingest.shared_strings import load_shared_strings, parse_shared_strings


def decode(data, sheet_name=None):
    with DecodeContext(io.BytesIO(data), sheet_name=sheet_name) as context:
        return read_xlsx(context)


class TestSharedStrings:
    """
    Tests for the shared string resolver.
    """

    def test_parses_plain_and_rich_text_items(self):
        """
        Test that rich-text runs are concatenated and phonetic runs ignored.
        """
        payload = (b'<sst xmlns="http://schemas.openxmlformats.org/spreadsheetml/2006/main">'
                   b'<si><t>plain</t></si>'
                   b'<si><r><t>ri</t></r><r><rPr/><t>ch</t></r><rPh><t>x</t></rPh></si>'
                   b'<si><t/></si>'
                   b'</sst>')

        table = parse_shared_strings(payload)

        assert list(table) == ["plain", "rich", ""]
        assert table.resolve(1) == "rich"
        assert table.resolve(3) is None
        assert table.resolve(-1) is None

    def test_missing_part_gives_empty_table(self, factory):
        data = factory.build_xlsx([("Sheet1", [["a"]])])

        with zipfile.ZipFile(io.BytesIO(data)) as archive:
            assert len(load_shared_strings(archive)) == 0

    def test_malformed_part_aborts_with_container_error(self, factory):
        data = factory.build_xlsx([("Sheet1", [["a"]])], extra_parts={"xl/sharedStrings.xml": "<sst><si>"})

        with pytest.raises(ContainerError) as exc_info:
            decode(data)

        assert exc_info.value.part == "xl/sharedStrings.xml"


class TestSheetResolution:
    """
    Tests for locating the worksheet part.
    """

    def test_default_is_first_workbook_sheet(self, factory):
        data = factory.build_xlsx([("Summary", [["s"]]), ("Detail", [["d"]])])

        with zipfile.ZipFile(io.BytesIO(data)) as archive:
            assert resolve_sheet_part(archive) == ("Summary", "xl/worksheets/sheet1.xml")

    @pytest.mark.parametrize("selector", [None, ""], ids=["none", "empty-string"])
    def test_missing_or_empty_selector_reads_first_sheet(self, factory, selector):
        data = factory.build_xlsx([("Summary", [["s"]]), ("Detail", [["d"]])])

        assert decode(data, sheet_name=selector).columns == ["s"]

    def test_selects_by_workbook_sheet_name_case_insensitively(self, factory):
        data = factory.build_xlsx([("Summary", [["s"]]), ("Detail", [["d"]])])

        table = decode(data, sheet_name="detail")

        assert table.columns == ["d"]

    def test_selects_by_part_suffix(self, factory):
        """
        Test that a selector matching a part file name works without workbook metadata.
        """
        data = factory.build_xlsx([("A", [["one"]]), ("B", [["two"]])], with_workbook=False)

        assert decode(data, sheet_name="Sheet2").columns == ["two"]
        assert decode(data).columns == ["one"]

    def test_missing_sheet_raises_not_found_with_name(self, factory):
        data = factory.build_xlsx([("Sheet1", [["a"]])])

        with pytest.raises(NotFoundError) as exc_info:
            decode(data, sheet_name="Missing")

        assert exc_info.value.sheet_name == "Missing"

    def test_suffix_match_does_not_match_longer_names(self, factory):
        data = factory.build_xlsx([("A", [["a"]])], with_workbook=False,
                                  extra_parts={"xl/worksheets/mysheet3.xml": factory.sheet_xml([["x"]])})

        with pytest.raises(NotFoundError):
            decode(data, sheet_name="sheet3")


class TestReadWorksheet:
    """
    Tests for decoding worksheet rows and cells.
    """

    def test_end_to_end_name_age(self, people_xlsx):
        """
        Test the name/age workbook decodes to typed rows under the header names.
        """
        table = decode(people_xlsx)

        assert table.columns == ["name", "age"]
        assert table.rows == [["Alice", 25], ["Bob", 30]]

    def test_out_of_range_shared_string_falls_back_to_raw_text(self, factory):
        data = factory.build_xlsx([("S", [["h1", "h2"], [("s", "0"), ("s", "99")]])], shared_strings=["zero"])

        table = decode(data)

        assert table.rows == [["zero", 99]]

    def test_width_is_widest_row_not_header(self, factory):
        """
        Test that a data row wider than the header is not truncated and every row has the same width.
        """
        rows = [["a", "b"], ["1"], ["1", "2", "3", "4"], ["x", "y", "z"]]
        table = decode(factory.build_xlsx([("S", rows)]))

        assert table.columns == ["a", "b", "col_2", "col_3"]
        assert len(table.rows) == 3
        assert all(len(row) == 4 for row in table.rows)
        assert table.rows[1] == [1, 2, 3, 4]

    def test_cells_are_placed_by_reference(self, factory):
        data = factory.build_xlsx([("S", [["a", "b", "c"], ["1", None, "3"]])])

        assert decode(data).rows == [[1, None, 3]]

    def test_cells_without_reference_are_sequential(self, factory):
        sheet = ('<worksheet xmlns="http://schemas.openxmlformats.org/spreadsheetml/2006/main"><sheetData>'
                 '<row><c t="inlineStr"><is><t>k</t></is></c><c t="inlineStr"><is><t>v</t></is></c></row>'
                 '<row><c><v>1</v></c><c t="b"><v>1</v></c></row>'
                 '</sheetData></worksheet>')
        data = factory.build_xlsx([], with_workbook=False, extra_parts={"xl/worksheets/sheet1.xml": sheet})

        table = decode(data)

        assert table.columns == ["k", "v"]
        assert table.rows == [[1, True]]

    def test_literal_and_typed_values(self, factory):
        rows = [["n", "f", "t", "s"], [("n", "42"), ("n", "1.5"), ("str", "true"), ("inlineStr", "Engineering")]]

        table = decode(factory.build_xlsx([("S", rows)]))

        assert table.rows == [[42, 1.5, True, "Engineering"]]

    def test_empty_sheet_raises_empty_input(self, factory):
        data = factory.build_xlsx([("Empty", [])])

        with pytest.raises(EmptyInputError) as exc_info:
            decode(data)

        assert exc_info.value.sheet_name == "Empty"

    def test_malformed_sheet_xml_raises_container_error(self, factory):
        data = factory.build_xlsx([], with_workbook=False, extra_parts={"xl/worksheets/sheet1.xml": "<worksheet>"})

        with pytest.raises(ContainerError):
            decode(data)

    @pytest.mark.parametrize(
        "part",
        ["xl/worksheets/sheet1.xml", "xl/sharedStrings.xml"],
        ids=["worksheet", "shared-strings"]
    )
    def test_corrupt_deflate_data_raises_container_error(self, factory, people_xlsx, part):
        with pytest.raises(ContainerError) as exc_info:
            decode(factory.corrupt_part(people_xlsx, part))

        assert exc_info.value.part == part

    def test_unsupported_compression_raises_container_error(self, people_xlsx):
        with zipfile.ZipFile(io.BytesIO(people_xlsx)) as archive:
            with patch.object(archive, "read", side_effect=NotImplementedError("That compression method is not supported")):
                with pytest.raises(ContainerError) as exc_info:
                    load_shared_strings(archive)

        assert exc_info.value.part == "xl/sharedStrings.xml"

    def test_not_a_zip_raises_container_error(self):
        with pytest.raises(ContainerError):
            decode(b"definitely not a zip file")

    def test_archive_is_closed_after_decode(self, people_xlsx):
        with DecodeContext(io.BytesIO(people_xlsx)) as context:
            read_xlsx(context)
            archive = context.archive

        assert context.archive is None
        assert archive.fp is None


@pytest.mark.parametrize(
    "reference, expected",
    [("A1", 0), ("B7", 1), ("Z3", 25), ("AA1", 26), ("AB10", 27), ("", None), (None, None), ("12", None)],
    ids=["A", "B", "Z", "AA", "AB", "empty", "none", "digits-only"]
)
def test_column_index(reference, expected):
    assert column_index(reference) == expected


def test_shared_string_table_is_read_only():
    table = SharedStringTable(["a"])

    with pytest.raises(AttributeError):
        table.append("b")
