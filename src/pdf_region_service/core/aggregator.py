"""Collects exactly one result per requested image."""

from typing import Dict, Iterable, List, Sequence

from .types import (
    EncodedImage,
    ErrorKind,
    ExtractionResponse,
    ExtractionResult,
    ImageSpec,
)


class ResultAggregator:
    """
    Append-only accumulator keyed by ``ImageSpec.position``.

    Results are kept in the order they were recorded, which is page order
    when driven by the orchestrator.
    """

    def __init__(self, request_id: str, images: Sequence[ImageSpec]):
        self.request_id = request_id
        self._images = list(images)
        self._results: Dict[int, ExtractionResult] = {}

    def __len__(self) -> int:
        return len(self._results)

    def is_resolved(self, spec: ImageSpec) -> bool:
        return spec.position in self._results

    def record(self, result: ExtractionResult) -> None:
        position = result.spec.position
        if position in self._results:
            raise ValueError(
                f"Image {result.spec.image_id!r} at position {position} already has a result"
            )
        self._results[position] = result

    def record_success(self, spec: ImageSpec, image: EncodedImage) -> None:
        self.record(ExtractionResult.success(spec, image))

    def record_failure(self, spec: ImageSpec, kind: ErrorKind, message: str) -> None:
        self.record(ExtractionResult.failure(spec, kind, message))

    def fail_all(self, specs: Iterable[ImageSpec], kind: ErrorKind, message: str) -> int:
        """Fail every given spec that has no result yet. Returns how many were marked."""
        marked = 0
        for spec in specs:
            if spec.position in self._results:
                continue
            self.record_failure(spec, kind, message)
            marked += 1
        return marked

    def fail_remaining(self, kind: ErrorKind, message: str) -> int:
        """Fail every spec of the batch not yet resolved."""
        return self.fail_all(self._images, kind, message)

    def assemble(self, order: str = "page") -> ExtractionResponse:
        """
        Build the response.

        ``order="page"`` keeps recording order (grouped by page),
        ``order="input"`` re-sorts to the original request order.
        """
        missing = [spec for spec in self._images if spec.position not in self._results]
        if missing or len(self._results) != len(self._images):
            raise RuntimeError(
                f"Batch {self.request_id} is incomplete: {len(self._results)} results "
                f"for {len(self._images)} images (missing: {[s.image_id for s in missing]})"
            )

        if order == "input":
            results: List[ExtractionResult] = [self._results[s.position] for s in self._images]
        elif order == "page":
            results = list(self._results.values())
        else:
            raise ValueError(f"Unknown result order: {order}")

        return ExtractionResponse(request_id=self.request_id, results=results)
