"""
noteguard - Formula-based detection of prohibited notes.

noteguard decides whether a piece of user-generated content (a "note")
matches the operator's prohibited-note formula: a recursive boolean
expression over the note's text, attachments, mentions and hashtags and
its author's profile and roles.

It provides:
- A fail-open formula evaluator (errors never block posting)
- A gate that loads the formula, author and roles and runs the evaluator
- Pydantic models and YAML loaders for formulas and subjects

Example usage:
    $ noteguard check note.yaml --meta meta.yaml --user user.yaml
    $ noteguard validate meta.yaml
"""

__version__ = "0.1.0"
__author__ = "noteguard Contributors"

from noteguard.gate import ProhibitGate
from noteguard.policy import FormulaEvaluator

__all__ = [
    "__version__",
    "__author__",
    "FormulaEvaluator",
    "ProhibitGate",
]
