"""Error Classifier: never-failing retry advice for transport errors.

Classifies a failed request (HTTP status + message) into an error class
and a retry policy. An optional remote model is consulted behind a
circuit breaker; a deterministic decision tree answers otherwise.
Results are cached briefly and logged in batches as training data.
"""

__version__ = "1.0.0"
