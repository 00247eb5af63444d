"""
Process-local fallback storage.

Audit entries that could not be written to the database are kept here so
they can still be inspected (and re-played) from a shell or a test.
"""

from typing import Dict, List

audit_logs: List[Dict] = []
