"""Per-entity read/write helpers over the SQLAlchemy models.

Each module mirrors one table. Functions shape parameters and issue queries;
workflow rules live in ``alak_site.services``. Write helpers commit by default
and accept ``commit=False`` so a caller can group several writes.
"""
