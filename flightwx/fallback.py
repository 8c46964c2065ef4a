"""
Ordered fallback strategies

A chain holds named strategies tried in sequence. The first strategy that
returns a value other than None wins. A strategy that raises is logged and
skipped, except for the exception types listed in ``passthrough`` which
propagate to the caller unchanged.
"""

import logging
from typing import Any, Callable, List, Optional, Sequence, Tuple, Type

from .errors import ComputationError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)

Strategy = Callable[[], Optional[Any]]


class FallbackChain:
    """Chain-of-responsibility over result producers"""

    def __init__(
        self,
        name: str,
        strategies: Sequence[Tuple[str, Strategy]],
        passthrough: Tuple[Type[BaseException], ...] = (NotFoundError, ValidationError),
    ):
        if not strategies:
            raise ValueError("FallbackChain needs at least one strategy")
        self.name = name
        self.strategies: List[Tuple[str, Strategy]] = list(strategies)
        self.passthrough = passthrough
        self.last_strategy: Optional[str] = None

    def run(self) -> Any:
        """Return the first non-None result, raising ComputationError if none"""
        last_error = None

        for label, strategy in self.strategies:
            try:
                result = strategy()
            except self.passthrough:
                raise
            except Exception as e:
                last_error = e
                logger.warning(f"[{self.name}] strategy '{label}' failed: {e}")
                continue

            if result is not None:
                self.last_strategy = label
                if label != self.strategies[0][0]:
                    logger.info(f"[{self.name}] served by fallback strategy '{label}'")
                return result

        if last_error:
            raise ComputationError(f"All {self.name} strategies failed. Last error: {last_error}")
        raise ComputationError(f"No {self.name} strategy produced a result")
