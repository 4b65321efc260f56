"""Subject pattern helpers for publish subjects, stream filters and reply inboxes."""


class SubjectPatterns:
    """Centralized subject handling shared by the request model and transports."""

    @staticmethod
    def reply_subject(inbox_prefix: str, correlation_token: str) -> str:
        """Reply subject that carries the correlation token as its last token."""
        return f"{inbox_prefix}.{correlation_token}"

    @staticmethod
    def reply_wildcard(inbox_prefix: str) -> str:
        """Subscription subject covering every reply under ``inbox_prefix``."""
        return f"{inbox_prefix}.*"

    @staticmethod
    def token_from_reply(inbox_prefix: str, subject: str) -> str | None:
        """Extract the correlation token from a reply subject, or None if foreign."""
        prefix = f"{inbox_prefix}."
        if not subject.startswith(prefix):
            return None
        token = subject[len(prefix) :]
        if not token or "." in token:
            return None
        return token

    @staticmethod
    def is_valid_publish_subject(subject: str) -> bool:
        """Literal subject: dot-separated, non-empty tokens, no wildcards or whitespace.

        Invalid subjects:
        - "" - empty string
        - "orders..created" - empty token
        - "orders.*" - wildcards cannot be published to
        - "orders created" - whitespace
        """
        if not subject or any(c.isspace() for c in subject):
            return False
        tokens = subject.split(".")
        return all(token and token not in ("*", ">") for token in tokens)

    @staticmethod
    def is_valid_filter(pattern: str) -> bool:
        """Stream filter: like a publish subject, but ``*`` anywhere and ``>`` last."""
        if not pattern or any(c.isspace() for c in pattern):
            return False
        tokens = pattern.split(".")
        for i, token in enumerate(tokens):
            if not token:
                return False
            if token == ">" and i != len(tokens) - 1:
                return False
            if token not in ("*", ">") and ("*" in token or ">" in token):
                return False
        return True

    @staticmethod
    def matches(pattern: str, subject: str) -> bool:
        """Whether ``subject`` falls under the filter ``pattern``."""
        pattern_tokens = pattern.split(".")
        subject_tokens = subject.split(".")
        for i, token in enumerate(pattern_tokens):
            if token == ">":
                return len(subject_tokens) > i
            if i >= len(subject_tokens):
                return False
            if token != "*" and token != subject_tokens[i]:
                return False
        return len(pattern_tokens) == len(subject_tokens)
