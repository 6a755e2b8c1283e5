"""Command line entry point.

Usage:
    python -m src.uncertainty.cli project-trajectory sbet.out --zone 11 --output sbet.csv
    python -m src.uncertainty.cli project-trajectory sbet.out --trajectory-table --output trajectory.csv
    python -m src.uncertainty.cli tpu sbet.out configs/sensor.yaml points.csv --output tpu.csv
    python -m src.uncertainty.cli body-frame sbet.out configs/sensor.yaml points.csv
    python -m src.uncertainty.cli best-fit-plane sbet.out configs/sensor.yaml points.csv
    python -m src.uncertainty.cli partials sbet.out configs/sensor.yaml points.csv
    python -m src.uncertainty.cli --output adjusted.yaml adjust sbet.out configs/sensor.yaml patches.csv

Point tables are CSV files with ``X, Y, Z, ScanAngle, GpsTime`` columns
and optional ``NormalX, NormalY, NormalZ`` columns.  `adjust` also needs
a patch id column (``PatchId`` by default) grouping the returns of each
planar surface.

By default `project-trajectory` writes a report with ``Time, Northing,
Easting, Elevation`` and attitude in degrees against true north.  With
``--trajectory-table`` it writes the ``time, x, y, z, roll, pitch, yaw``
table (radians, heading against grid north) that the other commands
accept as a trajectory.
"""

import argparse
import sys
from pathlib import Path
from typing import List, Optional

import numpy as np
import pandas as pd

from ..common.errors import LidarTpuError
from ..common.point import PointMeasurement
from ..mapping.boresight import AdjustmentParameters
from ..navigation.sbet import read_sbet, read_smrmsg, sbet_to_trajectory
from ..utils.geodesy import geodetic_to_utm, utm_zone
from .engine import LidarEngine, Output

POINT_COLUMNS = ("X", "Y", "Z", "ScanAngle", "GpsTime")
NORMAL_COLUMNS = ("NormalX", "NormalY", "NormalZ")

ADJUSTMENT_CHOICES = {
    "boresight": AdjustmentParameters.BORESIGHT,
    "lever-arm": AdjustmentParameters.LEVER_ARM,
    "all": AdjustmentParameters.ALL,
}


def _read_table(path: Path, required=POINT_COLUMNS) -> pd.DataFrame:
    df = pd.read_csv(path)
    missing = [c for c in required if c not in df.columns]
    if missing:
        raise ValueError(f"{path} is missing columns: {', '.join(missing)}")
    return df


def _to_points(df: pd.DataFrame) -> List[PointMeasurement]:
    has_normals = set(NORMAL_COLUMNS).issubset(df.columns)
    points = []
    for row in df.itertuples(index=False):
        normal = None
        if has_normals:
            normal = (row.NormalX, row.NormalY, row.NormalZ)
        points.append(PointMeasurement(row.X, row.Y, row.Z, row.ScanAngle, row.GpsTime, normal=normal))
    return points


def read_points(path: Path, decimation: int = 1) -> List[PointMeasurement]:
    return _to_points(_read_table(path).iloc[::decimation])


def read_patches(path: Path, column: str = "PatchId", decimation: int = 1) -> List[List[PointMeasurement]]:
    """Points grouped by patch id, in sorted id order."""
    df = _read_table(path, POINT_COLUMNS + (column,)).iloc[::decimation]
    return [_to_points(group) for _, group in df.groupby(column, sort=True)]


def project_trajectory(sbet_path: Path, zone: Optional[int], decimation: int) -> pd.DataFrame:
    sbet = read_sbet(sbet_path).iloc[::decimation]
    if zone is None:
        zone = utm_zone(float(sbet["longitude"].iloc[0]))
    easting, northing, height = geodetic_to_utm(
        sbet["longitude"].to_numpy(), sbet["latitude"].to_numpy(), sbet["altitude"].to_numpy(), zone
    )
    return pd.DataFrame({
        "Time": sbet["time"].to_numpy(),
        "Northing": northing,
        "Easting": easting,
        "Elevation": height,
        "Roll": np.degrees(sbet["roll"].to_numpy()),
        "Pitch": np.degrees(sbet["pitch"].to_numpy()),
        "Yaw": np.degrees(sbet["heading"].to_numpy()),
    })


def trajectory_table(
    sbet_path: Path, zone: Optional[int], decimation: int, smrmsg_path: Optional[Path] = None
) -> pd.DataFrame:
    """Projected trajectory in the layout read by ``Trajectory.from_csv``."""
    accuracy = read_smrmsg(smrmsg_path) if smrmsg_path is not None else None
    sbet = read_sbet(sbet_path).iloc[::decimation]
    return sbet_to_trajectory(sbet, zone=zone, accuracy=accuracy).to_dataframe()


def partials_table(engine: LidarEngine, points: List[PointMeasurement], step: float) -> pd.DataFrame:
    """Analytical and finite difference partials of every point, one row per entry."""
    rows = []
    for index, point in enumerate(points):
        for check in engine.measurement(point).check_partials(step):
            rows.append({
                "point": index,
                "variable": check.variable,
                "dimension": check.dimension,
                "analytical": check.analytical,
                "numerical": check.numerical,
                "error": check.error,
            })
    return pd.DataFrame(rows, columns=["point", "variable", "dimension", "analytical", "numerical", "error"])


def _write(df: pd.DataFrame, output: Optional[Path], index: bool = True) -> None:
    if output is None:
        df.to_csv(sys.stdout, index=index)
    else:
        df.to_csv(output, index=index)
        print(f"Wrote {len(df)} rows to {output}")


def _add_inputs(command: argparse.ArgumentParser, points_help: str = "Point table (CSV)") -> None:
    command.add_argument("trajectory", type=Path, help="SBET (.out) or trajectory CSV")
    command.add_argument("config", type=Path, help="Sensor configuration (YAML)")
    command.add_argument("points", type=Path, help=points_help)
    command.add_argument("--smrmsg", type=Path, help="SMRMSG accuracy file")


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        description="Total propagated uncertainty and body-frame coordinates for lidar points"
    )
    parser.add_argument("--decimation", "-d", type=int, default=1, help="Use every n-th record")
    parser.add_argument("--output", "-o", type=Path, help="Output CSV, or YAML for adjust (default stdout)")
    subparsers = parser.add_subparsers(dest="command", required=True)

    project = subparsers.add_parser("project-trajectory", help="Project an SBET file into UTM")
    project.add_argument("sbet", type=Path)
    project.add_argument("--zone", type=int, help="UTM zone (default from the first record)")
    project.add_argument(
        "--trajectory-table",
        action="store_true",
        help="Write the time,x,y,z,roll,pitch,yaw table accepted as a trajectory",
    )
    project.add_argument("--smrmsg", type=Path, help="SMRMSG accuracy file (with --trajectory-table)")

    for name, help_text in (
        ("tpu", "Compute total propagated uncertainty"),
        ("body-frame", "Compute points in the platform body frame"),
        ("best-fit-plane", "Fit a plane to the points in the body frame"),
    ):
        command = subparsers.add_parser(name, help=help_text)
        _add_inputs(command)
        command.add_argument("--progress", action="store_true", help="Show a progress bar")

    partials = subparsers.add_parser("partials", help="Compare analytical partials with finite differences")
    _add_inputs(partials)
    partials.add_argument("--step", type=float, default=1e-6, help="Finite difference step (default: 1e-6)")

    adjust = subparsers.add_parser("adjust", help="Estimate boresight and lever arm from planar patches")
    _add_inputs(adjust, points_help="Point table (CSV) with a patch id column")
    adjust.add_argument("--patch-column", default="PatchId", help="Patch id column (default: PatchId)")
    adjust.add_argument(
        "--parameters",
        choices=sorted(ADJUSTMENT_CHOICES),
        default="boresight",
        help="Calibration parameters to estimate (default: boresight)",
    )
    adjust.add_argument("--max-iterations", type=int, default=50, help="Iteration bound (default: 50)")

    args = parser.parse_args(argv)
    if args.decimation < 1:
        parser.error("--decimation must be at least 1")

    if args.command == "project-trajectory":
        if args.trajectory_table:
            _write(trajectory_table(args.sbet, args.zone, args.decimation, args.smrmsg), args.output, index=False)
        else:
            _write(project_trajectory(args.sbet, args.zone, args.decimation), args.output)
        return 0

    if args.command == "adjust":
        if args.output is None:
            parser.error("adjust needs --output for the adjusted configuration")
        engine = LidarEngine.from_paths(args.trajectory, args.config, smrmsg_path=args.smrmsg)
        patches = read_patches(args.points, args.patch_column, args.decimation)
        try:
            result = engine.estimate_boresight(
                patches,
                parameters=ADJUSTMENT_CHOICES[args.parameters],
                max_iterations=args.max_iterations,
            )
        except LidarTpuError as error:
            print(f"Error: {error}", file=sys.stderr)
            return 1
        result.config.save(args.output)
        print(f"boresight correction (deg): {np.degrees(result.boresight_correction).tolist()}")
        print(f"lever arm correction (m): {result.lever_arm_correction.tolist()}")
        print(f"rmse: {result.initial_rmse:.6f} m -> {result.rmse:.6f} m in {result.iterations} iterations")
        print(f"Wrote adjusted configuration to {args.output}")
        return 0

    outputs = Output.BODY_FRAME if args.command in ("body-frame", "best-fit-plane") else Output.TPU
    engine = LidarEngine.from_paths(args.trajectory, args.config, smrmsg_path=args.smrmsg, outputs=outputs)
    points = read_points(args.points, args.decimation)

    if args.command == "best-fit-plane":
        plane = engine.fit_plane(points)
        print(f"normal: {plane.normal.tolist()}")
        print(f"point: {plane.point.tolist()}")
        print(f"rms: {plane.rms:.6f} m over {plane.count} points")
        return 0

    if args.command == "partials":
        _write(partials_table(engine, points, args.step), args.output, index=False)
        return 0

    outcomes = engine.process_batch(points, show_progress=args.progress)
    _write(engine.to_dataframe(outcomes), args.output)
    return 0 if all(o.ok for o in outcomes) else 1


if __name__ == "__main__":
    sys.exit(main())
