"""
eCard Parser
============
Layout-driven field extraction for OCR'd certification eCards.

Architecture:
    - OCR Reader: Turns OCR JSON into ordered lines and text components
    - Template Catalog: Recognizes which eCard layout produced the OCR output
    - Label Resolver: Finds the value nearest a label in a given direction
    - Paragraph Extractor: Rebuilds the certificate title paragraph
    - Extraction Engine: Composes the above into one row per document
    - Batch Processor: Drains the sqlite work queue into tab-delimited CSV files

Version: 1.0.0
"""

__version__ = "1.0.0"
