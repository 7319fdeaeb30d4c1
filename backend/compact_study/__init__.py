"""
compact_study: staged content-processing pipeline for compact study guides.

Source documents flow through a DAG of processor stages and come out as a
single AcademicDocument.
"""

__version__ = "0.1.0"
