"""
Appraisal Kernel

The stateful core of the performance appraisal module:
- Appraisal cycle lifecycle (draft -> active -> completed)
- Participant progress and overdue tracking
- Goal rating submission, release, acknowledgment and dispute workflow
- Durable notification intents (outbox) written with every state change
- Deferred action execution driven by the reconciler
"""

__version__ = "0.1.0"
