"""
Tests for invocation framing: script building, line splitting and record parsing.
"""

import base64

from psclient.domain.command import Command
from psclient.domain.records import RemoteObject
from psclient.infrastructure.framing import (
    BOOTSTRAP_SCRIPT,
    LineBuffer,
    RecordParser,
    StderrDecoder,
    build_arguments,
    build_bootstrap_command,
    build_invocation_script,
    encode_script_input,
)


class TestScriptBuilding:
    """Test cases for script and argument building."""

    def test_invocation_script_contains_pipeline_and_depth(self):
        script = build_invocation_script([Command.script("5 * 24")], depth=7)

        assert "& { 5 * 24 }" in script
        assert "-Depth 7" in script
        assert "*>&1" in script

    def test_bootstrap_is_utf16_base64(self):
        decoded = base64.b64decode(build_bootstrap_command()).decode("utf-16-le")
        assert decoded == BOOTSTRAP_SCRIPT

    def test_arguments(self):
        args = build_arguments()
        assert args[:3] == ["-NoLogo", "-NoProfile", "-NonInteractive"]
        assert args[-2] == "-EncodedCommand"

    def test_script_input_round_trip(self):
        encoded = encode_script_input("Write-Output 'héllo'")
        assert encoded.endswith("\r\n")
        assert base64.b64decode(encoded.strip()).decode("utf-8") == "Write-Output 'héllo'"


class TestLineBuffer:
    """Test cases for LineBuffer."""

    def test_split_across_reads(self):
        buffer = LineBuffer()

        assert buffer.feed(b"first\r\nsec") == ["first"]
        assert buffer.feed(b"ond\nthi") == ["second"]
        assert buffer.flush() == ["thi"]
        assert buffer.flush() == []

    def test_multibyte_character_split(self):
        buffer = LineBuffer()
        data = "é\n".encode("utf-8")

        assert buffer.feed(data[:1]) == []
        assert buffer.feed(data[1:]) == ["é"]


class TestRecordParser:
    """Test cases for RecordParser."""

    def setup_method(self):
        """Set up test fixtures."""
        self.parser = RecordParser()

    def test_data_line(self):
        parsed = self.parser.parse_line('D:{"t":["System.Int32","System.ValueType"],"s":"120","v":120}')
        obj = self.parser.to_remote_object(parsed.payload)

        assert parsed.tag == "D"
        assert obj == RemoteObject(120, ("System.Int32", "System.ValueType"), "120")
        assert obj.type_name == "System.Int32"

    def test_error_line(self):
        parsed = self.parser.parse_line(
            'E:{"message":"Access denied","category":"PermissionDenied","error_id":"X","target":"C:\\\\a","exception":"System.UnauthorizedAccessException"}'
        )
        record = self.parser.to_error_record(parsed.payload)

        assert parsed.tag == "E"
        assert str(record) == "Access denied"
        assert record.target == "C:\\a"
        assert record.exception_type == "System.UnauthorizedAccessException"

    def test_untagged_lines(self):
        assert self.parser.parse_line("plain output").tag is None
        assert self.parser.parse_line("D:not json").payload == "D:not json"
        assert self.parser.parse_line("X:{}").tag is None
        assert self.parser.parse_line("").tag is None


def feed_lines(decoder, lines):
    return [record for line in lines for record in decoder.feed(line)]


class TestStderrDecoder:
    """Test cases for StderrDecoder."""

    def test_plain_lines(self):
        decoder = StderrDecoder()
        records = feed_lines(decoder, ["boom", "", "  "])
        assert [r.message for r in records] == ["boom"]

    def test_clixml(self):
        decoder = StderrDecoder()
        records = feed_lines(decoder, [
            "#< CLIXML",
            '<Objs Version="1.1.0.1" xmlns="http://schemas.microsoft.com/powershell/2004/04">'
            '<S S="Error">Cannot find path &apos;C:\\x&apos;_x000D__x000A_</S>'
            '<S S="Error">At line:1 char:1_x000D__x000A_</S></Objs>',
        ])

        assert len(records) == 1
        assert records[0].message == "Cannot find path 'C:\\x'\r\nAt line:1 char:1"

    def test_clixml_progress_only(self):
        decoder = StderrDecoder()
        records = feed_lines(decoder, [
            "#< CLIXML",
            '<Objs Version="1.1.0.1"><Obj S="progress" RefId="0"><TN RefId="0"></TN></Obj></Objs>',
        ])
        assert records == []
