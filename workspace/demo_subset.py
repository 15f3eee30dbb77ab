"""
CALIPSO Subset Demo
===================

Runs the subsetter over a list of CALIPSO HDF files, writes the binary
stream to a file and then reads it back to summarize each scan.

Usage:
    python workspace/demo_subset.py --files testdata/files.txt \
        --timestamp 2006070500 --hours 24 \
        --variable Extinction_Coefficient_532 --domain -110 35 -75 36
"""

import argparse
import numpy as np
from pathlib import Path

# Handle imports
import sys
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from calipso_subset.accumulator import SubsetRequest, read_file_list, subset_files
from calipso_subset.config import Config, CALIPSOError
from calipso_subset.geometry import Bounds
from calipso_subset.utils import format_bytes, setup_logging

HEADER_LINES = 15


def read_subset(path: Path):
    """Read header lines, per-scan metadata and data from a subset file."""
    stream = path.read_bytes()
    position = 0
    for _ in range(HEADER_LINES):
        position = stream.index(b"\n", position) + 1

    header = stream[:position].decode('ascii').splitlines()
    variables, _, scans = (int(word) for word in header[4].split())
    body = stream[position:]

    timestamps = np.frombuffer(body, dtype='>i8', count=scans)
    offset = 8 * scans
    bounds = np.frombuffer(body, dtype='>f8', count=4 * scans,
                           offset=offset).reshape(scans, 2, 2)
    offset += 32 * scans
    dimensions = np.frombuffer(body, dtype='>i8', count=2 * scans,
                               offset=offset).reshape(scans, 2)
    offset += 16 * scans

    data = []
    for points, levels in dimensions:
        count = 3 * points + (variables - 3) * points * levels
        data.append(np.frombuffer(body, dtype='>f8', count=count, offset=offset))
        offset += 8 * count

    return header, timestamps, bounds, dimensions, data


def main():
    """Main demo function."""
    parser = argparse.ArgumentParser(
        description="Subset CALIPSO files and summarize the result"
    )
    parser.add_argument("--files", type=str, required=True,
                        help="File listing CALIPSO HDF files, one per line")
    parser.add_argument("--timestamp", type=int, default=2006070500,
                        help="First hour YYYYMMDDHH (default: 2006070500)")
    parser.add_argument("--hours", type=int, default=24,
                        help="Number of hours (default: 24)")
    parser.add_argument("--variable", type=str, default="Extinction_Coefficient_532",
                        help="Variable to subset (default: Extinction_Coefficient_532)")
    parser.add_argument("--domain", type=float, nargs=4,
                        default=[-180.0, -90.0, 180.0, 90.0],
                        help="MIN_LON MIN_LAT MAX_LON MAX_LAT")
    parser.add_argument("--output", type=str, default="./subset.xdr",
                        help="Output file (default: ./subset.xdr)")

    args = parser.parse_args()
    setup_logging(log_level="INFO")

    print("\n" + "=" * 70)
    print("CALIPSO Subset")
    print("=" * 70)
    print(f"Variable: {args.variable}")
    print(f"Time: {args.timestamp} + {args.hours} hours")
    print(f"Domain: {args.domain}")

    try:
        request = SubsetRequest(
            files=read_file_list(args.files),
            variable=args.variable,
            yyyymmddhh=args.timestamp,
            hours=args.hours,
            description="demo_subset",
            domain=Bounds.from_domain(*args.domain),
        )
        output_path = Path(args.output)
        with open(output_path, 'wb') as output:
            scans = subset_files(request, output)
    except (CALIPSOError, OSError) as e:
        print(f"✗ Subset failed: {e}")
        return 1

    if not scans:
        print("✗ No data within subset")
        return 1

    print(f"✓ Wrote {scans} scan(s) to {output_path} "
          f"({format_bytes(output_path.stat().st_size)})")

    header, timestamps, bounds, dimensions, data = read_subset(output_path)
    print(f"\n{'='*70}")
    print("Header:")
    print(f"{'='*70}")
    for line in header:
        print(f"  {line}")

    print(f"\n{'='*70}")
    print("Scans:")
    print(f"{'='*70}")
    for i, (timestamp, box, (points, levels), values) in enumerate(
            zip(timestamps, bounds, dimensions, data), 1):
        variable = values[3 * points + points * levels:][:points * levels]
        valid = variable[variable != Config.MISSING_VALUE]
        print(f"  {i}. {timestamp}: {points} x {levels}")
        print(f"     Lon: [{box[0, 0]:.3f}, {box[0, 1]:.3f}]")
        print(f"     Lat: [{box[1, 0]:.3f}, {box[1, 1]:.3f}]")
        if valid.size:
            print(f"     {args.variable}: {valid.size} valid, "
                  f"range [{valid.min():.4g}, {valid.max():.4g}]")
        else:
            print(f"     {args.variable}: no valid values")

    print(f"\n✓ Demo completed!")
    return 0


if __name__ == "__main__":
    sys.exit(main())
