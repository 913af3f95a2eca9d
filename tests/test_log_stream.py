from coreason_runner.utils.log_stream import (
    STDERR,
    STDOUT,
    classify_stderr,
    demultiplex,
    encode_frame,
    parse_frames,
    strip_control_characters,
    summarize_frames,
)


def test_demultiplex_preserves_order_per_stream() -> None:
    buffer = (
        encode_frame(STDOUT, b"one\n")
        + encode_frame(STDERR, b"warn\n")
        + encode_frame(STDOUT, b"two\n")
        + encode_frame(STDERR, b"fail\n")
    )

    output = demultiplex(buffer)

    assert output.stdout == b"one\ntwo\n"
    assert output.stderr == b"warn\nfail\n"
    assert output.stdout_text == "one\ntwo\n"
    assert output.stderr_text == "warn\nfail\n"


def test_truncated_trailing_frame_is_dropped() -> None:
    complete = encode_frame(STDOUT, b"complete")
    truncated = encode_frame(STDOUT, b"this payload is cut")[:-5]

    frames = parse_frames(complete + truncated)

    assert len(frames) == 1
    assert frames[0].data == b"complete"


def test_short_header_is_ignored() -> None:
    frames = parse_frames(encode_frame(STDOUT, b"ok") + b"\x01\x00\x00")

    assert [f.data for f in frames] == [b"ok"]
    assert parse_frames(b"\x01\x00") == []


def test_unknown_stream_id_stops_parsing() -> None:
    buffer = encode_frame(STDOUT, b"first") + encode_frame(3, b"bogus") + encode_frame(STDOUT, b"never")

    output = demultiplex(buffer)

    assert output.stdout_text == "first"


def test_empty_buffer() -> None:
    output = demultiplex(b"")

    assert output.stdout == b""
    assert output.stderr_text == ""


def test_control_characters_are_stripped_from_text_only() -> None:
    payload = b"a\x00b\x07c\td\ne\rf\x1b[0m"

    frame = parse_frames(encode_frame(STDOUT, payload))[0]

    assert frame.data == payload
    assert frame.text == "abc\td\ne\rf[0m"
    assert strip_control_characters("x\x7fy") == "xy"


def test_frame_header_declares_big_endian_length() -> None:
    frame = encode_frame(STDERR, b"x" * 300)

    assert frame[0] == STDERR
    assert frame[1:4] == b"\x00\x00\x00"
    assert frame[4:8] == (300).to_bytes(4, "big")


def test_summarize_frames() -> None:
    frames = parse_frames(encode_frame(STDOUT, b"abc") + encode_frame(STDERR, b"de") + encode_frame(STDOUT, b"f"))

    summary = summarize_frames(frames)

    assert summary["total_frames"] == 3
    assert summary["stdout_frames"] == 2
    assert summary["stderr_frames"] == 1
    assert summary["stdout_size"] == 4
    assert summary["stderr_size"] == 2
    assert summary["mixed_streams"] is True
    assert summarize_frames([])["first_frame_at"] is None


def test_classify_stderr() -> None:
    assert classify_stderr("") == {"has_error": False}
    assert classify_stderr("first\nError: No such image: foo\n")["error_type"] == "IMAGE_NOT_FOUND"
    assert classify_stderr("sh: 1: cannot open: Permission denied")["error_type"] == "PERMISSION_ERROR"
    assert classify_stderr("/bin/sh: foo: not found")["error_type"] == "COMMAND_NOT_FOUND"

    result = classify_stderr("process failed with exit code 137\n\n")
    assert result["error_type"] == "NON_ZERO_EXIT"
    assert result["error_code"] == "137"
    assert result["message"] == "process failed with exit code 137"


def test_multibyte_character_split_across_frames() -> None:
    payload = "héllo\n".encode()
    buffer = encode_frame(STDOUT, payload[:2]) + encode_frame(STDOUT, payload[2:]) + encode_frame(STDERR, "ü".encode())

    output = demultiplex(buffer)

    assert output.stdout == payload
    assert output.stdout_text == "héllo\n"
    assert output.stderr_text == "ü"
