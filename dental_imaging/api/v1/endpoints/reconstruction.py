"""Reconstruction endpoints.

Slice stacks are uploaded with every request; the server keeps no session state.
Projections and MPR views are returned as PNG, exports as DICOM files.
"""

import time
from io import BytesIO
from typing import Annotated

from fastapi import APIRouter, Depends, File, Form, HTTPException, Path, Query, UploadFile, status
from fastapi.responses import Response, StreamingResponse
from pydantic import ValidationError

from dental_imaging.core.config import get_settings
from dental_imaging.core.exceptions import (
    EmptyInputError,
    EncodingPreconditionError,
    InputMismatchError,
    ReconstructionError,
    RenderTargetError,
    UnsupportedSliceError,
)
from dental_imaging.core.logging import audit_logger, get_logger
from dental_imaging.services.dicom.encoder import DicomMetadata
from dental_imaging.services.imaging.image import ProjectionResult
from dental_imaging.services.imaging.loader import SliceFile, load_slice_images, load_slice_series
from dental_imaging.services.imaging.mpr import MultiPlanarReslicer, Plane
from dental_imaging.services.imaging.pipeline import ReconstructionParams, ReconstructionPipeline
from dental_imaging.services.imaging.projection import ProjectionMode

router = APIRouter()
logger = get_logger(__name__)

CHUNK_SIZE = 4 * 1024 * 1024  # 4MB


def _http_error(exc: ReconstructionError) -> HTTPException:
    """Map an engine error onto an HTTP error."""
    if isinstance(exc, (EmptyInputError, UnsupportedSliceError)):
        code = status.HTTP_400_BAD_REQUEST
    elif isinstance(exc, (InputMismatchError, EncodingPreconditionError)):
        code = status.HTTP_422_UNPROCESSABLE_ENTITY
    elif isinstance(exc, RenderTargetError):
        code = status.HTTP_500_INTERNAL_SERVER_ERROR
    else:
        code = status.HTTP_400_BAD_REQUEST
    return HTTPException(status_code=code, detail=str(exc))


async def _read_uploads(files: list[UploadFile]) -> list[SliceFile]:
    """Read uploaded files into memory, enforcing the configured limits."""
    settings = get_settings()
    max_upload_bytes = int(settings.reconstruction.max_upload_mb * 1024 * 1024)

    if not files:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No files provided",
        )
    if len(files) > settings.reconstruction.max_slices:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=f"At most {settings.reconstruction.max_slices} slices are accepted",
        )

    total_bytes = 0
    slice_files = []
    for file in files:
        buffer = BytesIO()
        try:
            while True:
                chunk = await file.read(CHUNK_SIZE)
                if not chunk:
                    break
                total_bytes += len(chunk)
                if total_bytes > max_upload_bytes:
                    raise HTTPException(
                        status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
                        detail=(
                            f"Upload exceeds max size of {settings.reconstruction.max_upload_mb}MB"
                        ),
                    )
                buffer.write(chunk)
        finally:
            await file.close()
        slice_files.append(SliceFile(name=file.filename or "", content=buffer.getvalue()))

    return slice_files


def reconstruction_params(
    projection_mode: ProjectionMode | None = Query(None, description="Projection mode"),
    curve_radius: float | None = Query(None, ge=40, le=120, description="Arch radius (percent)"),
    curve_angle: float | None = Query(None, ge=90, le=270, description="Arch sweep (degrees)"),
    curve_offset: float | None = Query(None, ge=-50, le=50, description="Radial offset"),
    slice_thickness: int | None = Query(None, ge=1, le=30, description="Radial sweep thickness"),
    brightness: float | None = Query(None, ge=50, le=200, description="Brightness (percent)"),
    contrast: float | None = Query(None, ge=50, le=200, description="Contrast (percent)"),
    window_level: float | None = Query(None, ge=0, le=2000, description="Window center"),
    window_width: float | None = Query(None, ge=200, le=4000, description="Window width"),
    slice_index: float | None = Query(None, ge=0, le=100, description="Orthogonal slice (percent)"),
) -> ReconstructionParams:
    """Request parameters on top of the configured defaults."""
    try:
        return ReconstructionParams.from_settings(
            projection_mode=projection_mode,
            curve_radius=curve_radius,
            curve_angle=curve_angle,
            curve_offset=curve_offset,
            slice_thickness=slice_thickness,
            brightness=brightness,
            contrast=contrast,
            window_level=window_level,
            window_width=window_width,
            slice_index=slice_index,
        )
    except ValidationError as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=e.errors(include_url=False, include_context=False),
        ) from e


def _png_response(image: ProjectionResult) -> StreamingResponse:
    try:
        content = image.to_png()
    except RenderTargetError as e:
        raise _http_error(e) from e
    return StreamingResponse(
        BytesIO(content),
        media_type="image/png",
        headers={
            "Cache-Control": "no-store",
            "X-Image-Width": str(image.width),
            "X-Image-Height": str(image.height),
        },
    )


def _build_pipeline(slice_files: list[SliceFile]) -> ReconstructionPipeline:
    pipeline = ReconstructionPipeline()
    pipeline.load(load_slice_images(slice_files))
    return pipeline


@router.post("/projection")
async def create_projection(
    params: Annotated[ReconstructionParams, Depends(reconstruction_params)],
    files: list[UploadFile] = File(..., description="Slice images (raster or DICOM)"),
) -> StreamingResponse:
    """Reconstruct a projection of the uploaded slice stack.

    Returns the display image (after window/level, contrast and brightness) as PNG.
    """
    slice_files = await _read_uploads(files)
    start = time.perf_counter()

    try:
        pipeline = _build_pipeline(slice_files)
        image = pipeline.run(params)
    except ReconstructionError as e:
        audit_logger.log_reconstruction(
            mode=params.projection_mode.value,
            slice_count=len(slice_files),
            output_shape=(0, 0),
            duration_ms=(time.perf_counter() - start) * 1000,
            success=False,
            error=str(e),
        )
        raise _http_error(e) from e

    audit_logger.log_reconstruction(
        mode=params.projection_mode.value,
        slice_count=pipeline.volume.depth,
        output_shape=image.shape,
        duration_ms=(time.perf_counter() - start) * 1000,
    )
    return _png_response(image)


@router.post("/mpr/{plane}")
async def create_mpr_view(
    plane: Annotated[Plane, Path(description="Anatomical plane")],
    index: int = Query(0, ge=0, description="Slice, row or column index (clamped)"),
    window_center: float | None = Query(None, description="Window center override"),
    window_width: float | None = Query(None, gt=0, description="Window width override"),
    files: list[UploadFile] = File(..., description="Series slices (DICOM or raster)"),
) -> StreamingResponse:
    """Render one axial, coronal or sagittal view of the uploaded series.

    Coronal and sagittal views need at least two slices; 409 otherwise.
    """
    slice_files = await _read_uploads(files)
    start = time.perf_counter()

    try:
        reslicer = MultiPlanarReslicer(
            load_slice_series(slice_files),
            window_center=window_center,
            window_width=window_width,
        )
        image = reslicer.view(plane, index)
    except ReconstructionError as e:
        raise _http_error(e) from e

    if image is None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"{plane.value.capitalize()} view needs at least two slices",
        )

    audit_logger.log_reconstruction(
        mode=f"mpr-{plane.value}",
        slice_count=reslicer.slice_count,
        output_shape=image.shape,
        duration_ms=(time.perf_counter() - start) * 1000,
    )
    return _png_response(image)


@router.post("/dicom")
async def export_dicom(
    params: Annotated[ReconstructionParams, Depends(reconstruction_params)],
    patient_id: str = Form(..., description="Patient ID"),
    patient_name: str = Form(..., description="Patient name"),
    patient_birth_date: str | None = Form(None, description="Birth date (YYYYMMDD)"),
    patient_sex: str | None = Form(None, description="M, F or O"),
    study_description: str | None = Form(None),
    series_description: str | None = Form(None),
    institution_name: str | None = Form(None),
    modality: str | None = Form(None, description="Modality code"),
    files: list[UploadFile] = File(..., description="Slice images (raster or DICOM)"),
) -> Response:
    """Reconstruct the uploaded stack and export the display image as DICOM.

    The file is a Secondary Capture instance with freshly generated UIDs.
    """
    try:
        metadata = DicomMetadata(
            patient_id=patient_id,
            patient_name=patient_name,
            patient_birth_date=patient_birth_date,
            patient_sex=patient_sex,
            study_description=study_description,
            series_description=series_description,
            institution_name=institution_name,
            modality=modality,
        )
    except ValidationError as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=e.errors(include_url=False, include_context=False),
        ) from e

    slice_files = await _read_uploads(files)

    try:
        pipeline = _build_pipeline(slice_files)
        exported = pipeline.export_dicom(metadata, params)
    except ReconstructionError as e:
        raise _http_error(e) from e

    audit_logger.log_data_export(
        export_type="panoramic",
        resource_ids=[exported.sop_instance_uid],
        format="DICOM",
        patient_id=metadata.patient_id,
        details={
            "projection_mode": params.projection_mode.value,
            "size_bytes": len(exported.content),
        },
    )

    filename = pipeline.encoder.suggest_filename(metadata)
    return Response(
        content=exported.content,
        media_type="application/dicom",
        headers={
            "Content-Disposition": f'attachment; filename="{filename}"',
            "X-SOP-Instance-UID": exported.sop_instance_uid,
        },
    )
