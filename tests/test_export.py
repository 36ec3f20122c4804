import csv
import io
import unittest

from wlbot.export import EXPORT_COLUMNS, export_filename, render_csv
from wlbot.models import FREEMINT, WHITELIST, Entry


class RenderCsvTests(unittest.TestCase):
    def test_header_and_one_line_per_entry(self) -> None:
        entries = [
            Entry("111", "0xaaa", WHITELIST, max_slots=2),
            Entry("222", "0xbbb", FREEMINT, max_slots=1),
        ]
        text = render_csv(entries)
        lines = text.splitlines()
        self.assertEqual(lines[0], "Discord ID,Wallet Address,List,Max Slots")
        self.assertEqual(lines[1:], ["111,0xaaa,whitelist,2", "222,0xbbb,freemint,1"])
        self.assertTrue(text.endswith("\n"))
        self.assertNotIn("\r", text)

    def test_empty_registry_renders_only_header(self) -> None:
        self.assertEqual(render_csv([]), "Discord ID,Wallet Address,List,Max Slots\n")

    def test_fields_with_commas_are_quoted(self) -> None:
        text = render_csv([Entry("1", "odd,address", WHITELIST)])
        rows = list(csv.reader(io.StringIO(text)))
        self.assertEqual(rows[1][1], "odd,address")
        self.assertEqual(len(text.splitlines()), 2)

    def test_custom_columns(self) -> None:
        columns = EXPORT_COLUMNS[:2]
        text = render_csv([Entry("1", "0xabc")], columns=columns)
        self.assertEqual(text, "Discord ID,Wallet Address\n1,0xabc\n")

    def test_export_filename(self) -> None:
        self.assertEqual(export_filename(WHITELIST), "whitelist.csv")
        self.assertEqual(export_filename(), "wallets.csv")


if __name__ == "__main__":
    unittest.main()
