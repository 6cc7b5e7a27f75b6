"""Tests for the one-shot ingestion runner's argument and input handling."""

from __future__ import annotations

from pathlib import Path

import pytest

from services.ingestion.ingest_runner import main, parse_args


class TestIngestRunner:
    def test_parse_args(self) -> None:
        args = parse_args(["--video-id", "video-1", "--tenant-id", "tenant-a", "transcript.json"])

        assert args.video_id == "video-1"
        assert args.tenant_id == "tenant-a"
        assert args.transcript == Path("transcript.json")

    def test_tenant_is_required(self) -> None:
        with pytest.raises(SystemExit):
            parse_args(["--video-id", "video-1", "transcript.json"])

    @pytest.mark.asyncio
    async def test_missing_transcript_file(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("ROOT_DIR", str(tmp_path))

        code = await main(["--video-id", "v", "--tenant-id", "t", str(tmp_path / "missing.json")])

        assert code == 2

    @pytest.mark.asyncio
    async def test_invalid_transcript_file(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("ROOT_DIR", str(tmp_path))
        transcript = tmp_path / "transcript.json"
        transcript.write_text('{"segments": [{"index": 0, "start": 3, "end": 1}]}', encoding="utf-8")

        code = await main(["--video-id", "v", "--tenant-id", "t", str(transcript)])

        assert code == 2
