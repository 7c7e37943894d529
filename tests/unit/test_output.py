"""Unit tests for the Output buffer."""

import asyncio
import re

import pytest

from docker_commander.models.errors import OutputTimeoutError
from docker_commander.services.process.output import Output, OutputChunk


class TestOutputAppend:
    """Test appending and materialized views."""

    def test_as_string_concatenates_in_arrival_order(self):
        """Test as_string is the concatenation of every chunk."""
        output = Output()
        pieces = ["alpha\n", "be", "ta\n", "gamma"]
        for i, piece in enumerate(pieces, start=1):
            output.append(piece)
            assert output.as_string == "".join(pieces[:i])

    def test_bytes_are_decoded(self):
        """Test bytes chunks are decoded as UTF-8."""
        output = Output()
        output.append("hello 世界\n".encode("utf-8"))
        assert output.as_string == "hello 世界\n"

    def test_invalid_utf8_replaced(self):
        """Test invalid bytes do not raise."""
        output = Output()
        output.append(b"ok \xff\xfe done")
        assert "ok" in output.as_string
        assert "done" in output.as_string

    def test_empty_chunk_ignored(self):
        """Test empty data adds no chunk."""
        output = Output()
        output.append("")
        output.append(b"")
        assert output.chunks == ()

    def test_chunks_are_numbered(self):
        """Test chunks carry increasing sequence numbers."""
        output = Output()
        output.append("a")
        output.append("b")
        assert output.chunks == (OutputChunk(1, "a"), OutputChunk(2, "b"))

    def test_as_lines(self):
        """Test as_lines splits without terminators."""
        output = Output()
        output.append("one\n")
        output.append("two\r\n")
        output.append("three")
        assert output.as_lines == ["one", "two", "three"]

    def test_append_after_close_rejected(self):
        """Test a closed stream cannot grow."""
        output = Output()
        output.close()
        with pytest.raises(RuntimeError):
            output.append("late")


class TestOutputLimit:
    """Test output_limit eviction."""

    def test_line_mode_keeps_newest_lines(self):
        """Test the oldest lines are dropped past the limit."""
        output = Output(output_as_lines=True, limit=2)
        for line in ["1\n", "2\n", "3\n"]:
            output.append(line)
        assert output.as_string == "2\n3\n"
        assert output.dropped == 1

    def test_raw_mode_limits_characters(self):
        """Test raw mode evicts whole chunks by character count."""
        output = Output(output_as_lines=False, limit=5)
        output.append("abc")
        output.append("de")
        assert output.as_string == "abcde"
        output.append("f")
        assert output.as_string == "def"
        assert output.size == 3

    def test_raw_mode_keeps_newest_chunk(self):
        """Test an oversized chunk is still retained."""
        output = Output(output_as_lines=False, limit=2)
        output.append("abcdef")
        assert output.as_string == "abcdef"

    def test_no_limit_keeps_everything(self):
        """Test unlimited buffers drop nothing."""
        output = Output()
        for i in range(100):
            output.append(f"{i}\n")
        assert len(output.as_lines) == 100
        assert output.dropped == 0


class TestWaitForDataMatch:
    """Test pattern waits."""

    @pytest.mark.asyncio
    async def test_returns_immediately_when_matched(self):
        """Test an already matching view returns at once."""
        output = Output()
        output.append("server started\n")
        assert await output.wait_for_data_match("started", timeout=0.1) == "server started\n"

    @pytest.mark.asyncio
    async def test_matches_across_chunks(self):
        """Test a pattern spanning two chunks matches only once both arrive."""
        output = Output()
        waiter = asyncio.create_task(output.wait_for_data_match("IPAddress", timeout=1))

        output.append('{"IPAdd')
        await asyncio.sleep(0)
        assert not waiter.done()

        output.append('ress": "10.0.0.2"}')
        view = await waiter
        assert view == '{"IPAddress": "10.0.0.2"}'

    @pytest.mark.asyncio
    async def test_regex_matcher(self):
        """Test compiled patterns are searched."""
        output = Output()
        waiter = asyncio.create_task(
            output.wait_for_data_match(re.compile(r"ready on port \d+"), timeout=1)
        )
        await asyncio.sleep(0)
        output.append("ready on port ")
        await asyncio.sleep(0)
        assert not waiter.done()
        output.append("8080\n")
        assert "8080" in await waiter

    @pytest.mark.asyncio
    async def test_timeout_raises(self):
        """Test a pattern that never shows up times out."""
        output = Output()
        output.append("nothing useful")
        with pytest.raises(OutputTimeoutError) as exc_info:
            await output.wait_for_data_match("never", timeout=0.05)
        assert exc_info.value.timeout == 0.05

    @pytest.mark.asyncio
    async def test_close_fails_pending_wait(self):
        """Test closing the stream fails a wait that can no longer match."""
        output = Output()
        waiter = asyncio.create_task(output.wait_for_data_match("never", timeout=5))
        await asyncio.sleep(0)
        output.close()
        with pytest.raises(OutputTimeoutError):
            await waiter

    @pytest.mark.asyncio
    async def test_closed_stream_without_match_fails_fast(self):
        """Test waiting on a closed stream does not run out the timeout."""
        output = Output()
        output.append("done\n")
        output.close()
        with pytest.raises(OutputTimeoutError):
            await output.wait_for_data_match("missing", timeout=60)

    @pytest.mark.asyncio
    async def test_waiter_is_deregistered(self):
        """Test finished waits leave no registrations behind."""
        output = Output()
        with pytest.raises(OutputTimeoutError):
            await output.wait_for_data_match("x", timeout=0.01)
        assert output._waiters == []


class TestReadiness:
    """Test readiness predicates."""

    @pytest.mark.asyncio
    async def test_ready_function_receives_output_and_line(self):
        """Test the predicate gets the full output and the newest line."""
        seen = []

        def ready(output, line):
            seen.append((output, line))
            return "accept connections" in line

        output = Output(ready_function=ready)
        output.append("booting\n")
        assert not output.is_ready
        output.append("ready to accept connections\n")
        assert output.is_ready
        assert seen[-1] == (
            "booting\nready to accept connections\n",
            "ready to accept connections",
        )

    @pytest.mark.asyncio
    async def test_wait_ready_resolves(self):
        """Test wait_ready wakes when the predicate accepts."""
        output = Output(ready_function=lambda out, line: line == "READY")
        waiter = asyncio.create_task(output.wait_ready(timeout=1))
        await asyncio.sleep(0)
        output.append("READY\n")
        assert await waiter is True

    @pytest.mark.asyncio
    async def test_without_predicate_first_chunk_is_ready(self):
        """Test a stream without predicate is ready on first data."""
        output = Output()
        output.append("x")
        assert await output.wait_ready(timeout=0.01) is True

    @pytest.mark.asyncio
    async def test_without_predicate_close_is_ready(self):
        """Test a silent stream without predicate is ready once closed."""
        output = Output()
        output.close()
        assert output.is_ready

    @pytest.mark.asyncio
    async def test_closed_before_ready_fails(self):
        """Test a predicate that never accepted fails on close."""
        output = Output(ready_function=lambda out, line: False)
        waiter = asyncio.create_task(output.wait_ready(timeout=5))
        await asyncio.sleep(0)
        output.close()
        with pytest.raises(OutputTimeoutError):
            await waiter

    @pytest.mark.asyncio
    async def test_ready_timeout(self):
        """Test wait_ready is bounded."""
        output = Output(ready_function=lambda out, line: False)
        with pytest.raises(OutputTimeoutError):
            await output.wait_ready(timeout=0.01)

    def test_failing_predicate_is_not_ready(self):
        """Test a predicate that raises leaves the stream not ready."""

        def broken(output, line):
            raise ValueError("boom")

        output = Output(ready_function=broken)
        output.append("line\n")
        assert not output.is_ready
