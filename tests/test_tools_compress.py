import json

import pytest

from callprep.tools.compress import main


def test_compress_file(tmp_path, make_wav, capsys):
    source = tmp_path / "call.wav"
    source.write_bytes(make_wav(duration=1.0))

    assert main([source.as_posix(), "--preset", "high"]) == 0

    output = tmp_path / "call_compressed.mp3"
    assert output.exists()
    summary = json.loads(capsys.readouterr().out)
    assert summary["output"] == output.as_posix()
    assert summary["compressed_size_bytes"] == output.stat().st_size
    assert summary["settings_used"]["preset"] == "HIGH"


def test_compress_file_custom_output(tmp_path, make_wav):
    source = tmp_path / "call.wav"
    source.write_bytes(make_wav(duration=1.0))
    output = tmp_path / "out.mp3"

    assert main([source.as_posix(), "-o", output.as_posix()]) == 0
    assert output.stat().st_size > 0


def test_estimate_only(tmp_path, make_wav, capsys):
    source = tmp_path / "call.wav"
    source.write_bytes(make_wav(duration=1.0))

    assert main([source.as_posix(), "--estimate", "--preset", "MAXIMUM"]) == 0
    result = json.loads(capsys.readouterr().out)
    assert result["estimated_ratio"] == round(1 - 16 / 1411, 4)
    assert not (tmp_path / "call_compressed.mp3").exists()


def test_compression_error_exit_code(tmp_path, capsys):
    source = tmp_path / "notes.mp3"
    source.write_text("not audio at all\n" * 100)

    assert main([source.as_posix()]) == 1
    assert "DECODING" in capsys.readouterr().err


@pytest.mark.parametrize("extra", [[], ["--estimate"]])
def test_empty_file_is_a_usage_error(tmp_path, capsys, extra):
    source = tmp_path / "empty.wav"
    source.write_bytes(b"")

    with pytest.raises(SystemExit) as excinfo:
        main([source.as_posix(), *extra])
    assert excinfo.value.code == 2
    assert "File is empty" in capsys.readouterr().err
    assert not (tmp_path / "empty_compressed.mp3").exists()
