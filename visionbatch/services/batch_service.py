import asyncio
import time
from typing import Callable, List, Optional, Sequence

from visionbatch.core.errors import ConfigError, ValidationSkip
from visionbatch.core.logger import get_logger
from visionbatch.models.schemas import (
    DownscaleConfig,
    ImageItem,
    ItemState,
    Mode,
    OperationRequest,
    OperationResult,
)
from visionbatch.services.dispatch_service import Dispatcher
from visionbatch.services.error_service import classify
from visionbatch.services.image_service import detect_mime_type, downscale_with_config
from visionbatch.services.text_service import normalize


logger = get_logger(__name__)

InstructionProvider = Callable[[ImageItem], Optional[str]]


class BatchProcessor:
    """
    Runs every item of a batch through downscale -> dispatch -> normalize.

    A failing item becomes a success=False result and the batch moves on.
    Only a ConfigError raised before the first item aborts the whole run.
    """

    def __init__(
        self,
        dispatcher: Dispatcher,
        downscale_config: Optional[DownscaleConfig] = None,
        concurrency: int = 1,
    ):
        self.dispatcher = dispatcher
        self.downscale_config = downscale_config or DownscaleConfig()
        self.concurrency = max(1, concurrency)

    def _preflight(
        self,
        mode: Mode,
        instruction_text: Optional[str],
        instruction_provider: Optional[InstructionProvider],
    ) -> None:
        if mode == Mode.CUSTOM and instruction_provider is None and not (instruction_text or "").strip():
            raise ConfigError("Please write an instruction for the custom option")
        self.dispatcher.preflight(mode)

    def _instruction_for(
        self,
        item: ImageItem,
        mode: Mode,
        instruction_text: Optional[str],
        instruction_provider: Optional[InstructionProvider],
    ) -> Optional[str]:
        if mode != Mode.CUSTOM:
            return None
        if instruction_provider is not None:
            instruction_text = instruction_provider(item)
        if not (instruction_text or "").strip():
            raise ValidationSkip(f"No instruction given for {item.filename}")
        return instruction_text.strip()

    async def _process_item(
        self,
        item: ImageItem,
        mode: Mode,
        instruction_text: Optional[str],
        instruction_provider: Optional[InstructionProvider],
    ) -> Optional[OperationResult]:
        state = ItemState.PENDING
        try:
            instruction = self._instruction_for(item, mode, instruction_text, instruction_provider)

            state = ItemState.RESIZING
            mime_type = item.mime_type
            if not mime_type.lower().startswith("image/"):
                # generic upload type; remote services need the real one
                mime_type = detect_mime_type(item.raw_blob)
            blob = await asyncio.to_thread(
                downscale_with_config, item.raw_blob, self.downscale_config, mime_type
            )

            state = ItemState.DISPATCHING
            request = OperationRequest(
                mode=mode,
                image_blob=blob,
                mime_type=mime_type,
                filename=item.filename,
                instruction_text=instruction,
            )
            text = await self.dispatcher.dispatch(request)

            if mode == Mode.OCR:
                state = ItemState.NORMALIZING
                text = normalize(text)

            state = ItemState.DONE
            logger.debug("Item %s (%s) %s", item.id, item.filename, state.value)
            return OperationResult.ok(item, text)

        except ValidationSkip as e:
            logger.warning("Skipping %s: %s", item.filename, e)
            return None
        except Exception as e:
            message = classify(e)
            logger.warning(
                "Item %s (%s) %s while %s: %s",
                item.id, item.filename, ItemState.FAILED.value, state.value, message,
            )
            return OperationResult.failed(item, message)

    async def process_batch(
        self,
        items: Sequence[ImageItem],
        mode: Mode,
        instruction_text: Optional[str] = None,
        *,
        instruction_provider: Optional[InstructionProvider] = None,
    ) -> List[OperationResult]:
        """
        Process items and return their results in submission order.

        instruction_provider defers custom-instruction validation to each
        item: an item whose instruction comes back empty is skipped and
        yields no result, instead of failing the whole batch up front.
        """
        mode = Mode(mode)
        self._preflight(mode, instruction_text, instruction_provider)

        start = time.time()
        logger.info("Batch started: %d item(s), mode=%s", len(items), mode.value)

        if self.concurrency == 1:
            outcomes = []
            for item in items:
                outcomes.append(
                    await self._process_item(item, mode, instruction_text, instruction_provider)
                )
        else:
            semaphore = asyncio.Semaphore(self.concurrency)

            async def run(item: ImageItem) -> Optional[OperationResult]:
                async with semaphore:
                    return await self._process_item(item, mode, instruction_text, instruction_provider)

            # gather keeps input order whatever the completion order
            outcomes = await asyncio.gather(*(run(item) for item in items))

        results = [r for r in outcomes if r is not None]
        failed = sum(1 for r in results if not r.success)
        logger.info(
            "Batch finished: %d result(s), %d failed, %d skipped, %d ms",
            len(results), failed, len(items) - len(results), int((time.time() - start) * 1000),
        )
        return results
