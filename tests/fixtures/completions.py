"""Stand-ins for the external completion service."""

import json
import threading
from typing import Any, Callable, Dict, List, Optional

from memory_garden.errors import ClassifierError, TransientError
from memory_garden.services.llm_utils import CompletionRequest


def model_answer(**overrides: Any) -> str:
    payload: Dict[str, Any] = {
        "relevance1Month": 0.9,
        "relevance1Year": 0.8,
        "attachment": 0.7,
        "action": "keep",
        "confidence": 0.85,
        "sentiment": "positive",
        "sentimentScore": 0.6,
        "summary": "Holiday photo at the lake",
        "explanation": "Recent personal photo with clear family significance.",
    }
    payload.update(overrides)
    return json.dumps(payload)


class CountingCompletion:
    """Records every request and answers with a fixed (or per-call) response."""

    def __init__(self, answer: Optional[str] = None, responder: Optional[Callable[[CompletionRequest], str]] = None):
        self.answer = answer if answer is not None else model_answer()
        self.responder = responder
        self.requests: List[CompletionRequest] = []
        self._lock = threading.Lock()

    @property
    def calls(self) -> int:
        return len(self.requests)

    def __call__(self, request: CompletionRequest) -> str:
        with self._lock:
            self.requests.append(request)
        if self.responder is not None:
            return self.responder(request)
        return self.answer


class FailingCompletion(CountingCompletion):
    def __init__(self, error: Optional[ClassifierError] = None):
        super().__init__()
        self.error = error or TransientError("Request timeout")

    def __call__(self, request: CompletionRequest) -> str:
        with self._lock:
            self.requests.append(request)
        raise self.error
