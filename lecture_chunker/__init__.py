"""Split lecture videos into size-bounded segments for multimodal model upload."""
