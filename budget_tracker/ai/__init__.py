"""Budget advice from a chat model.

The insights view only needs ``generate(expenses, allocations, caps) -> str``;
:class:`BudgetAdvisor` implements that over any :class:`ChatBackend`.
"""
import json
import logging
import os
import urllib.request
from dataclasses import dataclass
from typing import Dict, List, Protocol

from huggingface_hub import InferenceClient

from budget_tracker.core.models import ALLOCATION, EXPENSE, CategoryBudget, Transaction

logger = logging.getLogger(__name__)

OLLAMA_URL = "http://localhost:11434/api/chat"
OPENAI_URL = "https://api.openai.com/v1/chat/completions"

UNAVAILABLE_MESSAGE = "AI insights are unavailable. Please configure an LLM provider."
EMPTY_MESSAGE = "No transactions to analyze."
NO_REPLY_MESSAGE = "Unable to generate insights at this time."

SYSTEM_PROMPT = (
    "You are a strategic marketing budget analyst for a corporate team. "
    "Assess the burn rate against allocated funding, name categories "
    "overspending their cap, and recommend reallocations. Be concise and "
    "use bullet points."
)

Summary = Dict[str, float]


class ChatBackend(Protocol):
    def complete(self, messages: List[dict]) -> str:
        """Return the assistant reply to ``messages``."""


class AdviceGenerator(Protocol):
    def generate(self, expenses: Summary, allocations: Summary, caps: Summary) -> str:
        ...


def _post_json(url: str, payload: dict, headers: Dict[str, str], timeout: float) -> dict:
    req = urllib.request.Request(url, data=json.dumps(payload).encode(), method="POST")
    req.add_header("Content-Type", "application/json")
    for name, value in headers.items():
        req.add_header(name, value)
    logger.debug("POST %s model=%s", url, payload.get("model"))
    with urllib.request.urlopen(req, timeout=timeout) as resp:
        return json.load(resp)


@dataclass
class HuggingFaceBackend:
    model: str
    token: str

    def __post_init__(self) -> None:
        self._client = InferenceClient(api_key=self.token)

    def complete(self, messages: List[dict]) -> str:
        out = self._client.chat_completion(messages=messages, model=self.model)
        return out.choices[0].message.content


@dataclass
class OpenAIBackend:
    model: str
    api_key: str
    timeout: float = 60.0

    def complete(self, messages: List[dict]) -> str:
        body = _post_json(
            OPENAI_URL,
            {"model": self.model, "messages": messages},
            {"Authorization": f"Bearer {self.api_key}"},
            self.timeout,
        )
        return body["choices"][0]["message"]["content"]


@dataclass
class OllamaBackend:
    model: str
    url: str = OLLAMA_URL
    timeout: float = 120.0

    def complete(self, messages: List[dict]) -> str:
        body = _post_json(
            self.url,
            {"model": self.model, "messages": messages, "stream": False},
            {},
            self.timeout,
        )
        reply = body.get("message", "")
        if isinstance(reply, dict):
            reply = reply.get("content", "")
        if not isinstance(reply, str):
            raise RuntimeError(f"Unexpected Ollama reply: {body}")
        return reply


def backend_from_env() -> ChatBackend:
    """Pick a chat backend from ``BUDGETWATCH_LLM_*`` environment variables.

    Raises ``RuntimeError`` when the chosen backend lacks credentials.
    """
    name = os.environ.get("BUDGETWATCH_LLM_PROVIDER", "huggingface").lower()
    model = os.environ.get("BUDGETWATCH_LLM_MODEL")

    if name == "openai":
        api_key = os.environ.get("OPENAI_API_KEY")
        if not api_key:
            raise RuntimeError("OPENAI_API_KEY not set")
        return OpenAIBackend(model=model or "gpt-4o-mini", api_key=api_key)
    if name == "ollama":
        return OllamaBackend(
            model=model or "phi3:mini", url=os.environ.get("OLLAMA_URL", OLLAMA_URL)
        )
    if name != "huggingface":
        raise RuntimeError(f"Unknown LLM provider '{name}'")

    token = os.environ.get("HF_API_TOKEN")
    if not token:
        raise RuntimeError("HF_API_TOKEN not set")
    return HuggingFaceBackend(model=model or "Qwen/Qwen3-32B", token=token)


def summarize_for_advice(
    transactions: List[Transaction], budgets: List[CategoryBudget]
) -> Dict[str, Summary]:
    """Spend by category, allocations by category and caps by category."""
    by_type: Dict[str, Summary] = {EXPENSE: {}, ALLOCATION: {}}
    for tx in transactions:
        if tx.type in by_type and tx.amount > 0:
            bucket = by_type[tx.type]
            bucket[tx.category] = bucket.get(tx.category, 0.0) + tx.amount
    return {
        "expenses": by_type[EXPENSE],
        "allocations": by_type[ALLOCATION],
        "caps": {b.category: b.monthly_limit for b in budgets},
    }


@dataclass
class BudgetAdvisor:
    """Burn-rate and reallocation advice for a marketing budget."""

    backend: ChatBackend
    system_prompt: str = SYSTEM_PROMPT

    def messages(self, expenses: Summary, allocations: Summary, caps: Summary) -> List[dict]:
        data = (
            f"Campaign Spend by Category: {json.dumps(expenses)}\n"
            f"Funding/Allocation Sources: {json.dumps(allocations)}\n"
            f"Channel Budget Caps: {json.dumps(caps)}"
        )
        return [
            {"role": "system", "content": self.system_prompt},
            {"role": "user", "content": data},
        ]

    def generate(self, expenses: Summary, allocations: Summary, caps: Summary) -> str:
        try:
            reply = self.backend.complete(self.messages(expenses, allocations, caps))
        except Exception as exc:
            logger.error("LLM request failed: %s", exc)
            return f"Error contacting LLM: {exc}"
        return (reply or "").strip() or NO_REPLY_MESSAGE


def generate_advice(
    transactions: List[Transaction],
    budgets: List[CategoryBudget],
    generator: AdviceGenerator | None = None,
) -> str:
    """Summarize the store contents and ask ``generator`` for advice text."""
    if not transactions:
        return EMPTY_MESSAGE
    if generator is None:
        try:
            generator = BudgetAdvisor(backend_from_env())
        except RuntimeError as exc:
            logger.warning("LLM provider unavailable: %s", exc)
            return UNAVAILABLE_MESSAGE
    summary = summarize_for_advice(transactions, budgets)
    return generator.generate(summary["expenses"], summary["allocations"], summary["caps"])
