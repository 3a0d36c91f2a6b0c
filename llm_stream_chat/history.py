"""Bounded conversation history and request building."""

from __future__ import annotations

import logging

from .models import ChatRequest, Role, Turn, total_weight

logger = logging.getLogger(__name__)

# Maximum total content weight (characters for text, parts for images)
DEFAULT_BUDGET = 4000 * 4


class HistoryBuffer:
    """Ordered prior turns, bounded by total content weight.

    The system turn is held separately and always leads the request. The
    buffer only changes on a successful exchange (append/commit) or an
    explicit clear(). Every clear() bumps ``generation`` so a send that
    started before the clear can be recognised and refused at commit time.

    Example:
        history = HistoryBuffer("You are a helpful assistant")
        request = history.build_request("hello", model="gpt-4o")
        ...
        history.commit(generation, "hello", "Hi there")
    """

    def __init__(self, system_prompt: str, budget: int = DEFAULT_BUDGET) -> None:
        """Initialize the buffer.

        Args:
            system_prompt: Content of the leading system turn.
            budget: Maximum total weight of a request's messages.
        """
        if budget <= 0:
            raise ValueError(f"Budget must be positive: {budget}")
        self.system_turn = Turn.text(Role.SYSTEM, system_prompt)
        self.budget = budget
        self._turns: list[Turn] = []
        self._generation = 0

    @property
    def turns(self) -> tuple[Turn, ...]:
        """Return the stored turns, oldest first."""
        return tuple(self._turns)

    @property
    def weight(self) -> int:
        """Return the total weight of the stored turns."""
        return total_weight(self._turns)

    @property
    def generation(self) -> int:
        """Return the clear() counter."""
        return self._generation

    def __len__(self) -> int:
        return len(self._turns)

    def trimmed(self, extra_weight: int = 0) -> tuple[Turn, ...]:
        """Return the longest suffix of history that fits the budget.

        The system turn and ``extra_weight`` (the new user turn) count
        against the budget. Oldest turns go first; if nothing fits, the
        result is empty.
        """
        fixed = self.system_turn.weight + extra_weight
        start = 0
        remaining = total_weight(self._turns)
        while start < len(self._turns) and fixed + remaining > self.budget:
            remaining -= self._turns[start].weight
            start += 1
        return tuple(self._turns[start:])

    def build_request(
        self,
        text: str,
        *,
        model: str,
        temperature: float | None = 0.5,
        stream: bool = True,
        image_url: str | None = None,
    ) -> ChatRequest:
        """Build a request for a new user turn. Does not modify the buffer.

        Args:
            text: The new user text.
            model: Provider model name.
            temperature: Sampling temperature (None omits it).
            stream: Whether to request a streamed response.
            image_url: Optional image to attach to the user turn.

        Returns:
            ChatRequest with messages [system] + trimmed history + [user].
        """
        if image_url is not None:
            user_turn = Turn.image(Role.USER, text, image_url)
        else:
            user_turn = Turn.text(Role.USER, text)

        history = self.trimmed(user_turn.weight)
        evicted = len(self._turns) - len(history)
        if evicted:
            logger.debug(
                "history_trimmed",
                extra={"evicted_turns": evicted, "budget": self.budget},
            )
        return ChatRequest(
            model=model,
            messages=(self.system_turn, *history, user_turn),
            temperature=temperature,
            stream=stream,
        )

    def append(self, user_turn: Turn, assistant_turn: Turn) -> None:
        """Append one exchange, evicting the oldest turns over budget."""
        self._turns.append(user_turn)
        self._turns.append(assistant_turn)
        while self._turns and total_weight(self._turns) > self.budget:
            self._turns.pop(0)

    def commit(
        self,
        generation: int,
        user_text: str,
        response_text: str,
        image_url: str | None = None,
    ) -> bool:
        """Append a completed exchange if no clear() happened since it began.

        Args:
            generation: Value of ``generation`` when the send started.
            user_text: The user's original text.
            response_text: The full assistant response.
            image_url: Image sent with the user turn, if any.

        Returns:
            True if committed, False if the exchange was stale.
        """
        if generation != self._generation:
            logger.info(
                "stale_commit_discarded",
                extra={"generation": generation, "current": self._generation},
            )
            return False
        if image_url is not None:
            user_turn = Turn.image(Role.USER, user_text, image_url)
        else:
            user_turn = Turn.text(Role.USER, user_text)
        self.append(
            user_turn,
            Turn.text(Role.ASSISTANT, response_text),
        )
        return True

    def clear(self) -> None:
        """Remove all turns and start a new generation."""
        self._turns.clear()
        self._generation += 1
