"""Atlas Verify travel document verification.

Parses machine-readable zones from OCR text, merges them with free-text
field extraction, cross-checks applicant declarations and evaluates a
configurable visa eligibility policy into an auditable report.
"""

__version__ = "1.0.0"
