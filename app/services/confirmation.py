"""Confirmation prompt guarding the draw and the diagnostics page.

This is a "type the code to continue" prompt, not access control.
"""


class ConfirmationGate:
    """Accepts an answer when it equals the configured code."""

    def __init__(self, expected_answer: str, label: str = 'confirmation') -> None:
        self.expected_answer = str(expected_answer)
        self.label = label

    def confirm(self, answer) -> bool:
        if answer is None:
            return False
        return str(answer).strip() == self.expected_answer
