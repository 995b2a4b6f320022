"""Image text search service.

Uploads images, extracts their text with Tesseract OCR after an OpenCV
preprocessing pass, stores the text in SQLite, and serves substring
search over everything collected so far.
"""

__version__ = "1.0.0"
