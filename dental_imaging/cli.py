"""Dental Imaging CLI - Command line reconstruction and export.

Usage:
    python -m dental_imaging.cli <command> [options]

Commands:
    version     Show version information
    project     Reconstruct a projection of a slice directory as PNG
    export      Reconstruct a projection and export it as DICOM
    mpr         Render one axial, coronal or sagittal view as PNG

Examples:
    python -m dental_imaging.cli project ./slices -o panoramic.png --mode curved
    python -m dental_imaging.cli export ./slices --patient-id 123 --patient-name "Jane Doe"
    python -m dental_imaging.cli mpr ./series coronal --index 200 -o coronal.png

"""

import argparse
import sys
from pathlib import Path
from typing import NoReturn

from pydantic import ValidationError

from dental_imaging.core.config import settings
from dental_imaging.core.exceptions import ReconstructionError
from dental_imaging.core.logging import setup_logging
from dental_imaging.services.dicom.encoder import DicomMetadata
from dental_imaging.services.imaging.loader import (
    load_slice_images,
    load_slice_series,
    read_directory,
)
from dental_imaging.services.imaging.mpr import MultiPlanarReslicer, Plane
from dental_imaging.services.imaging.pipeline import ReconstructionParams, ReconstructionPipeline
from dental_imaging.services.imaging.projection import ProjectionMode


def print_banner() -> None:
    """Print Dental Imaging CLI banner."""
    print("\n" + "=" * 50)
    print(" Dental Imaging CLI")
    print(" CBCT Panoramic Reconstruction")
    print("=" * 50 + "\n")


def print_error(message: str) -> None:
    """Print error message to stderr."""
    print(f"ERROR: {message}", file=sys.stderr)


def print_success(message: str) -> None:
    """Print success message."""
    print(f"SUCCESS: {message}")


def print_info(message: str) -> None:
    """Print info message."""
    print(f"INFO: {message}")


def _params_from_args(args: argparse.Namespace) -> ReconstructionParams:
    return ReconstructionParams.from_settings(
        projection_mode=args.mode,
        curve_radius=args.curve_radius,
        curve_angle=args.curve_angle,
        curve_offset=args.curve_offset,
        slice_thickness=args.slice_thickness,
        brightness=args.brightness,
        contrast=args.contrast,
        window_level=args.window_level,
        window_width=args.window_width,
        slice_index=args.slice_index,
    )


def _load_pipeline(directory: Path) -> ReconstructionPipeline:
    files = read_directory(directory)
    print_info(f"Loading {len(files)} slice files from {directory}")
    pipeline = ReconstructionPipeline()
    volume = pipeline.load(load_slice_images(files))
    print_info(f"Volume: {volume.width}x{volume.height}x{volume.depth}")
    return pipeline


def cmd_version(_args: argparse.Namespace) -> int:
    """Show version information."""
    print_banner()
    print(f"Version:     {settings.app_version}")
    print(f"Environment: {settings.environment}")
    print(f"Debug:       {settings.debug}")
    print(f"Python:      {sys.version.split()[0]}")
    return 0


def cmd_project(args: argparse.Namespace) -> int:
    """Reconstruct a projection command."""
    try:
        params = _params_from_args(args)
        pipeline = _load_pipeline(args.directory)
        image = pipeline.run(params)
        args.output.write_bytes(image.to_png())
    except (ReconstructionError, ValidationError, OSError) as e:
        print_error(str(e))
        return 1

    mode = params.projection_mode.value
    print_success(f"Wrote {image.width}x{image.height} {mode} to {args.output}")
    return 0


def cmd_export(args: argparse.Namespace) -> int:
    """Export a projection as DICOM command."""
    try:
        params = _params_from_args(args)
        metadata = DicomMetadata(
            patient_id=args.patient_id,
            patient_name=args.patient_name,
            patient_birth_date=args.birth_date,
            patient_sex=args.sex,
            study_description=args.study_description,
            series_description=args.series_description,
            institution_name=args.institution,
            modality=args.modality,
        )
        pipeline = _load_pipeline(args.directory)
        exported = pipeline.export_dicom(metadata, params)
        output = args.output or Path(pipeline.encoder.suggest_filename(metadata))
        output.write_bytes(exported.content)
    except (ReconstructionError, ValidationError, OSError) as e:
        print_error(str(e))
        return 1

    print_success(f"Wrote {len(exported.content)} bytes to {output}")
    return 0


def cmd_mpr(args: argparse.Namespace) -> int:
    """Render an MPR view command."""
    try:
        reslicer = MultiPlanarReslicer(
            load_slice_series(read_directory(args.directory)),
            window_center=args.window_center,
            window_width=args.window_width,
        )
        image = reslicer.view(args.plane, args.index)
        if image is None:
            print_error(f"{args.plane} view needs at least two slices")
            return 1
        args.output.write_bytes(image.to_png())
    except (ReconstructionError, OSError) as e:
        print_error(str(e))
        return 1

    print_success(f"Wrote {image.width}x{image.height} {args.plane} view to {args.output}")
    return 0


def _add_projection_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("directory", type=Path, help="Directory of slice images")
    parser.add_argument(
        "--mode",
        "-m",
        choices=[mode.value for mode in ProjectionMode],
        help="Projection mode",
    )
    parser.add_argument("--curve-radius", type=float, help="Arch radius (40-120 percent)")
    parser.add_argument("--curve-angle", type=float, help="Arch sweep (90-270 degrees)")
    parser.add_argument("--curve-offset", type=float, help="Radial offset (-50 to 50)")
    parser.add_argument("--slice-thickness", type=int, help="Radial sweep thickness (1-30)")
    parser.add_argument("--slice-index", type=float, help="Orthogonal slice (0-100 percent)")
    parser.add_argument("--brightness", type=float, help="Brightness (50-200 percent)")
    parser.add_argument("--contrast", type=float, help="Contrast (50-200 percent)")
    parser.add_argument("--window-level", type=float, help="Window center (0-2000)")
    parser.add_argument("--window-width", type=float, help="Window width (200-4000)")


def main(argv: list[str] | None = None) -> NoReturn:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="dental-imaging",
        description="Dental Imaging CLI - CBCT reconstruction and DICOM export",
    )
    parser.add_argument(
        "--version",
        "-V",
        action="version",
        version=f"Dental Imaging {settings.app_version}",
    )

    subparsers = parser.add_subparsers(
        title="commands",
        description="Available commands",
        dest="command",
    )

    # version command
    version_parser = subparsers.add_parser(
        "version",
        help="Show version information",
    )
    version_parser.set_defaults(func=cmd_version)

    # project command
    project_parser = subparsers.add_parser(
        "project",
        help="Reconstruct a projection as PNG",
    )
    _add_projection_arguments(project_parser)
    project_parser.add_argument(
        "--output",
        "-o",
        type=Path,
        default=Path("projection.png"),
        help="Output PNG path",
    )
    project_parser.set_defaults(func=cmd_project)

    # export command
    export_parser = subparsers.add_parser(
        "export",
        help="Reconstruct a projection and export it as DICOM",
    )
    _add_projection_arguments(export_parser)
    export_parser.add_argument("--patient-id", required=True, help="Patient ID")
    export_parser.add_argument("--patient-name", required=True, help="Patient name")
    export_parser.add_argument("--birth-date", help="Birth date (YYYYMMDD)")
    export_parser.add_argument("--sex", choices=["M", "F", "O"], help="Patient sex")
    export_parser.add_argument("--study-description", help="Study description")
    export_parser.add_argument("--series-description", help="Series description")
    export_parser.add_argument("--institution", help="Institution name")
    export_parser.add_argument(
        "--modality",
        help="Modality code (defaults to DICOM_DEFAULT_MODALITY)",
    )
    export_parser.add_argument(
        "--output",
        "-o",
        type=Path,
        help="Output DICOM path (defaults to <patient name>_panoramic.dcm)",
    )
    export_parser.set_defaults(func=cmd_export)

    # mpr command
    mpr_parser = subparsers.add_parser(
        "mpr",
        help="Render an axial, coronal or sagittal view as PNG",
    )
    mpr_parser.add_argument("directory", type=Path, help="Directory of DICOM or image slices")
    mpr_parser.add_argument(
        "plane",
        choices=[plane.value for plane in Plane],
        help="Anatomical plane",
    )
    mpr_parser.add_argument("--index", "-i", type=int, default=0, help="Slice, row or column index")
    mpr_parser.add_argument("--window-center", type=float, help="Window center override")
    mpr_parser.add_argument("--window-width", type=float, help="Window width override")
    mpr_parser.add_argument(
        "--output",
        "-o",
        type=Path,
        default=Path("mpr.png"),
        help="Output PNG path",
    )
    mpr_parser.set_defaults(func=cmd_mpr)

    # Parse arguments
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(0)

    setup_logging(log_level="DEBUG" if settings.debug else "WARNING")

    # Execute command
    exit_code = args.func(args)
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
