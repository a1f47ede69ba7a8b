"""Campus Library - student, book and loan tracking backend

This package contains the application modules:
- Configuration (config.py)
- Embedded SQL store adapter (database.py)
- Read cache (cache_manager.py) and debounced persistence (persistence.py)
- Data records (student.py, book.py, transaction.py)
- Library context with CRUD and lending workflow (library.py)
- Command surface consumed by front ends (commands.py)
- Spreadsheet export (exporter.py)
- CLI interface (main.py)
"""

__version__ = "1.0.0"
