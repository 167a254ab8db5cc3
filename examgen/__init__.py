"""Exam question generation pipeline: queued jobs, wave-scheduled LLM batches, de-duplicated results."""
