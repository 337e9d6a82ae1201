"""
Trivia Question Acquisition Pipeline
generation/

Sources, in priority order:
1. Edge cache        — last-known-good question per category:difficulty
2. Warm pool         — small FIFO of pre-generated questions
3. Live generation   — bounded, retried LLM attempts (validate + dedup each)
4. Fallback bank     — curated static questions, always answers

Every served question is shuffled from the request seed and recorded by the
deduplication tracker.
"""
