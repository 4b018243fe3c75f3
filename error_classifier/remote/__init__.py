"""Optional remote (neural) classifier and the breaker that guards it."""
