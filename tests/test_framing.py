"""
Tests for line framing (deck side) and reply framing (CasparCG side).
"""

import pytest

from deckbridge.playout.framing import ReplyShape, ResponseFramer
from deckbridge.protocol.framing import LineFramer

CLS_REPLY = (
    b"200 CLS OK\r\n"
    b'"INTRO"  MOVIE  1234 20250101000000 250 1/25\r\n'
    b'"OUTRO"  MOVIE  5678 20250101000000 125 1/25\r\n'
    b"\r\n"
)

# -----------------------------------------------------------------------------
# LineFramer
# -----------------------------------------------------------------------------


class TestLineFramer:
    """Tests for splitting controller input into lines."""

    def test_crlf_lines(self) -> None:
        """CRLF-terminated lines are returned without terminators."""
        framer = LineFramer()
        assert framer.feed(b"ping\r\ntransport info\r\n") == ["ping", "transport info"]

    def test_bare_lf(self) -> None:
        """Bare LF terminators are accepted."""
        framer = LineFramer()
        assert framer.feed(b"ping\nquit\n") == ["ping", "quit"]

    def test_partial_line_buffered(self) -> None:
        """A fragment without terminator waits for the next chunk."""
        framer = LineFramer()
        assert framer.feed(b"clips ge") == []
        assert framer.pending == b"clips ge"
        assert framer.feed(b"t\r\n") == ["clips get"]
        assert framer.pending == b""

    def test_cr_and_lf_split_across_chunks(self) -> None:
        """A CR at the end of one chunk is stripped once the LF arrives."""
        framer = LineFramer()
        assert framer.feed(b"ping\r") == []
        assert framer.feed(b"\n") == ["ping"]

    def test_blank_lines_dropped(self) -> None:
        """Empty and whitespace-only lines never reach the parser."""
        framer = LineFramer()
        assert framer.feed(b"\r\n   \r\nping\r\n\n") == ["ping"]


# -----------------------------------------------------------------------------
# ResponseFramer
# -----------------------------------------------------------------------------


class TestResponseFramerSingle:
    """Tests for single-line replies."""

    def test_single_reply(self) -> None:
        """A single reply is the first line without its terminator."""
        framer: ResponseFramer[str] = ResponseFramer()
        framer.expect(ReplyShape.SINGLE, "load")
        assert framer.feed(b"202 LOAD OK\r\n") == [("load", "202 LOAD OK")]
        assert framer.pending == 0

    def test_waits_for_terminator(self) -> None:
        """Nothing is returned until the line is complete."""
        framer: ResponseFramer[str] = ResponseFramer()
        framer.expect(ReplyShape.SINGLE, "play")
        assert framer.feed(b"202 PLAY") == []
        assert framer.feed(b" OK\r\n") == [("play", "202 PLAY OK")]

    def test_three_pipelined_in_one_read(self) -> None:
        """Back-to-back requests resolve in send order from one combined read."""
        framer: ResponseFramer[str] = ResponseFramer()
        for token in ("first", "second", "third"):
            framer.expect(ReplyShape.SINGLE, token)

        results = framer.feed(b"202 LOAD OK\r\n202 PLAY OK\r\n202 PAUSE OK\r\n")

        assert results == [
            ("first", "202 LOAD OK"),
            ("second", "202 PLAY OK"),
            ("third", "202 PAUSE OK"),
        ]

    def test_unexpected_data_stays_buffered(self) -> None:
        """Bytes with no pending request are kept, not dropped."""
        framer: ResponseFramer[str] = ResponseFramer()
        assert framer.feed(b"202 PLAY OK\r\n") == []
        framer.expect(ReplyShape.SINGLE, "late")
        assert framer.feed(b"") == [("late", "202 PLAY OK")]


class TestResponseFramerTwo:
    """Tests for two-line replies."""

    def test_two_line_reply(self) -> None:
        """Both lines are returned with their terminators."""
        framer: ResponseFramer[str] = ResponseFramer()
        framer.expect(ReplyShape.TWO, "cinf")
        data = b'201 CINF OK\r\n"INTRO" MOVIE 1 2 250 1/25\r\n'
        assert framer.feed(data) == [("cinf", data.decode())]

    def test_waits_for_second_line(self) -> None:
        """One line is not enough."""
        framer: ResponseFramer[str] = ResponseFramer()
        framer.expect(ReplyShape.TWO, "cinf")
        assert framer.feed(b"201 CINF OK\r\n") == []
        assert framer.feed(b"data\r\nextra") == [("cinf", "201 CINF OK\r\ndata\r\n")]
        assert framer.buffered == b"extra"


class TestResponseFramerMulti:
    """Tests for blank-line terminated replies."""

    def test_multi_reply(self) -> None:
        """Everything before the blank line is the reply; the blank line is consumed."""
        framer: ResponseFramer[str] = ResponseFramer()
        framer.expect(ReplyShape.MULTI, "cls")
        [(token, reply)] = framer.feed(CLS_REPLY + b"202 PLAY OK\r\n")

        assert token == "cls"
        assert reply == CLS_REPLY[: -len(b"\r\n\r\n")].decode()
        assert framer.buffered == b"202 PLAY OK\r\n"

    @pytest.mark.parametrize("chunk_size", [1, 2, 3, 7, 13])
    def test_reassembles_arbitrary_chunks(self, chunk_size: int) -> None:
        """Chunked input produces the same block as a single read."""
        whole: ResponseFramer[str] = ResponseFramer()
        whole.expect(ReplyShape.MULTI, "cls")
        expected = whole.feed(CLS_REPLY)

        framer: ResponseFramer[str] = ResponseFramer()
        framer.expect(ReplyShape.MULTI, "cls")
        results = []
        for i in range(0, len(CLS_REPLY), chunk_size):
            results.extend(framer.feed(CLS_REPLY[i : i + chunk_size]))

        assert results == expected
        assert framer.buffered == b""

    def test_stops_at_first_blank_line(self) -> None:
        """A second block stays buffered for the next request."""
        framer: ResponseFramer[str] = ResponseFramer()
        framer.expect(ReplyShape.MULTI, "a")
        framer.expect(ReplyShape.MULTI, "b")

        results = framer.feed(b"201 INFO OK\r\n<x/>\r\n\r\n200 CLS OK\r\nCLIP\r\n\r\n")

        assert results == [("a", "201 INFO OK\r\n<x/>"), ("b", "200 CLS OK\r\nCLIP")]

    def test_bare_lf_blank_line(self) -> None:
        """LF-only blank lines terminate a block too."""
        framer: ResponseFramer[str] = ResponseFramer()
        framer.expect(ReplyShape.MULTI, "cls")
        assert framer.feed(b"200 CLS OK\nA\n\n") == [("cls", "200 CLS OK\nA")]

    def test_mixed_shapes_in_order(self) -> None:
        """A queue of different shapes drains head-first in one pass."""
        framer: ResponseFramer[str] = ResponseFramer()
        framer.expect(ReplyShape.SINGLE, "load")
        framer.expect(ReplyShape.MULTI, "cls")
        framer.expect(ReplyShape.TWO, "cinf")

        results = framer.feed(b"202 LOAD OK\r\n200 CLS OK\r\nA\r\n\r\n201 CINF OK\r\nA 1/25\r\n")

        assert [token for token, _ in results] == ["load", "cls", "cinf"]

    def test_head_blocks_later_requests(self) -> None:
        """An incomplete head reply holds back replies for later requests."""
        framer: ResponseFramer[str] = ResponseFramer()
        framer.expect(ReplyShape.MULTI, "cls")
        framer.expect(ReplyShape.SINGLE, "play")

        assert framer.feed(b"200 CLS OK\r\nA\r\n") == []
        assert framer.pending == 2


class TestResponseFramerQueue:
    """Tests for queue management."""

    def test_pop_oldest(self) -> None:
        """pop_oldest removes the head request."""
        framer: ResponseFramer[str] = ResponseFramer()
        framer.expect(ReplyShape.SINGLE, "a")
        framer.expect(ReplyShape.SINGLE, "b")

        assert framer.pop_oldest() == "a"
        assert framer.feed(b"202 OK\r\n") == [("b", "202 OK")]
        assert framer.pop_oldest() is None

    def test_reset_buffer(self) -> None:
        """reset_buffer drops stale bytes but keeps pending requests."""
        framer: ResponseFramer[str] = ResponseFramer()
        framer.expect(ReplyShape.SINGLE, "a")
        framer.feed(b"partial")
        framer.reset_buffer()

        assert framer.buffered == b""
        assert framer.pending == 1
