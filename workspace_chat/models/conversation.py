from dataclasses import dataclass


@dataclass(frozen=True)
class DirectConversationKey:
    """
    Canonical identity of a direct conversation.

    A direct conversation has no document of its own. Its identity is the
    unordered user pair within a company, normalized as (low, high) so that
    both participants resolve to the same key regardless of who sends.
    """
    low: str
    high: str
    company_id: str

    @classmethod
    def between(cls, user_a: str, user_b: str, company_id: str) -> "DirectConversationKey":
        low, high = sorted((user_a, user_b))
        return cls(low=low, high=high, company_id=company_id)

    def __str__(self) -> str:
        return f"{self.company_id}:{self.low}:{self.high}"
