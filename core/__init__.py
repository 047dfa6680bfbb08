"""
Core business logic modules for Highlight Clipper

This package contains the core functionality modules:
- jobs.py: submitted job → output URL (poll until terminal)
- streampot.py: video URL → StreamPot extraction / clip jobs
- transcribe.py: audio URL → transcript with word timestamps
- selection.py: transcript → quoted excerpt
- excerpt.py: excerpt + word timestamps → clip time span
- pipeline.py: video URL → highlight clip URL
"""
