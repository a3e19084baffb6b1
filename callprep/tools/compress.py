"""
Compress an audio file on disk for speech analysis
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path

from callprep.logger import logger
from callprep.pipelines.compression import compress, default_settings, estimate_ratio
from callprep.processors.errors import CompressionError
from callprep.processors.types import AudioSource, CompressionPreset, CompressionSettings
from callprep.settings import settings as app_settings


async def process(
    source_path: Path,
    settings: CompressionSettings,
    output_path: Path | None = None,
) -> dict:
    source = AudioSource(data=source_path.read_bytes(), filename=source_path.name)
    result = await compress(source, settings, timeout=app_settings.COMPRESSION_TIMEOUT)

    output_path = output_path or source_path.with_name(result.compressed_filename)
    output_path.write_bytes(result.compressed_payload)
    logger.info("Compressed file written", output=output_path.as_posix())

    summary = result.summary()
    summary["output"] = output_path.as_posix()
    return summary


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        description="Compress an audio file (decode, downscale, condition, encode)"
    )
    parser.add_argument("source", help="Source file (mp3, wav, m4a, ogg, flac...)")
    parser.add_argument(
        "--preset",
        type=str.upper,
        choices=[p.value for p in CompressionPreset],
        help=f"Compression preset (default: {app_settings.COMPRESSION_DEFAULT_PRESET})",
    )
    parser.add_argument(
        "--output", "-o", help="Output file (default: <stem>_compressed.<ext>)"
    )
    parser.add_argument(
        "--estimate",
        action="store_true",
        help="Only print the estimated compression ratio",
    )
    args = parser.parse_args(argv)

    source_path = Path(args.source)
    if not source_path.is_file():
        parser.error(f"File not found: {source_path}")
    if source_path.stat().st_size == 0:
        parser.error(f"File is empty: {source_path}")

    settings = (
        CompressionSettings.from_preset(args.preset)
        if args.preset
        else default_settings()
    )

    if args.estimate:
        ratio = estimate_ratio(
            source_path.stat().st_size,
            settings,
            source_format=source_path.suffix,
        )
        print(json.dumps({"estimated_ratio": round(ratio, 4)}))
        return 0

    output_path = Path(args.output) if args.output else None
    try:
        summary = asyncio.run(process(source_path, settings, output_path))
    except CompressionError as e:
        print(f"Compression failed at {e.stage.value}: {e.message}", file=sys.stderr)
        return 1

    print(json.dumps(summary, indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
