"""
Form approval workflow.

- A fixed stage table (Draft -> Submitted -> Under Verification -> Verified
  -> Approved -> Completed, with Rejected as a terminal side exit)
- Actions are checked against the current stage and its required roles
- Submitted, Verified and Approved advance on their own after a delay
- Every processed action lands in the append-only audit trail
"""
