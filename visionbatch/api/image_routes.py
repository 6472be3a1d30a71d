import uuid
from typing import List, Optional, Union

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile

from visionbatch.core.config import settings
from visionbatch.core.errors import ConfigError
from visionbatch.models.schemas import (
    BatchResponse,
    DownscaleConfig,
    ImageItem,
    Mode,
    OperationResult,
    ResultCard,
)
from visionbatch.services import file_service
from visionbatch.services.batch_service import BatchProcessor
from visionbatch.services.dispatch_service import build_dispatcher


router = APIRouter(prefix="/images", tags=["Images"])

EMPTY_RESPONSE_TEXT = "No response could be generated."

# One set of remote clients for the whole app; closed on shutdown in main.py
dispatcher = build_dispatcher(settings)


def get_processor() -> BatchProcessor:
    return BatchProcessor(
        dispatcher,
        DownscaleConfig(
            max_width_px=settings.DOWNSCALE_MAX_WIDTH,
            quality=settings.DOWNSCALE_QUALITY,
        ),
        concurrency=settings.BATCH_CONCURRENCY,
    )


def with_max_width(processor: BatchProcessor, max_width: Optional[int]) -> BatchProcessor:
    if max_width is None:
        return processor
    if max_width <= 0:
        raise HTTPException(status_code=400, detail="max_width must be a positive integer")
    config = DownscaleConfig(max_width_px=max_width, quality=processor.downscale_config.quality)
    return BatchProcessor(processor.dispatcher, config, concurrency=processor.concurrency)


# -----------------------------
# Rendering
# -----------------------------

def render_result(result: OperationResult) -> ResultCard:
    if result.success:
        return ResultCard(
            item_id=result.item_id,
            filename=result.filename,
            success=True,
            text=result.text,
            display_text=result.text or EMPTY_RESPONSE_TEXT,
            copyable=True,
        )
    return error_card(result.item_id, result.filename, result.error_message)


def error_card(item_id: str, filename: str, message: str) -> ResultCard:
    return ResultCard(
        item_id=item_id,
        filename=filename,
        success=False,
        error_message=message,
        display_text=f"Error processing {filename}: {message}",
    )


# -----------------------------
# Routes
# -----------------------------

@router.post("/process", response_model=ResultCard)
async def process_image(
    file: UploadFile = File(...),
    mode: Mode = Form(Mode.OCR),
    instruction: Optional[str] = Form(None),
    max_width: Optional[int] = Form(None),
    processor: BatchProcessor = Depends(get_processor),
):
    try:
        processor = with_max_width(processor, max_width)

        contents = await file.read()
        reason = file_service.check_size(contents)
        if reason:
            raise HTTPException(status_code=400, detail=reason)

        item = file_service.build_item(contents, file.filename, file.content_type)
        results = await processor.process_batch([item], mode, instruction)
        return render_result(results[0])

    except (ConfigError, HTTPException):
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/process-batch", response_model=BatchResponse)
async def process_batch(
    files: List[UploadFile] = File(...),
    mode: Mode = Form(Mode.OCR),
    instruction: Optional[str] = Form(None),
    max_width: Optional[int] = Form(None),
    processor: BatchProcessor = Depends(get_processor),
):
    """
    Batch processing:
    - keeps upload order in the results
    - empty / oversized files get an error card in place and never reach the pipeline
    - one failing image never aborts the others
    """
    if len(files) > settings.MAX_DOCS_PER_BATCH:
        raise HTTPException(
            status_code=400,
            detail=f"Too many files. Received {len(files)} but max allowed is {settings.MAX_DOCS_PER_BATCH}.",
        )
    processor = with_max_width(processor, max_width)

    entries: List[Union[ImageItem, ResultCard]] = []
    for f in files:
        contents = await f.read()
        reason = file_service.check_size(contents)
        if reason:
            filename = file_service.sanitize_filename(f.filename or "image")
            entries.append(error_card(str(uuid.uuid4()), filename, reason))
            continue
        entries.append(file_service.build_item(contents, f.filename, f.content_type))

    items = [e for e in entries if isinstance(e, ImageItem)]
    # ConfigError aborts the whole batch; handled app-wide as a 400
    results = await processor.process_batch(items, mode, instruction)

    by_id = {r.item_id: r for r in results}
    cards: List[ResultCard] = []
    for entry in entries:
        if isinstance(entry, ResultCard):
            cards.append(entry)
        elif entry.id in by_id:
            cards.append(render_result(by_id[entry.id]))

    return BatchResponse(
        status="success",
        mode=mode,
        max_docs_allowed=settings.MAX_DOCS_PER_BATCH,
        results=cards,
    )
