"""
ciflow — допуск событий и последовательный запуск стадий CI-пайплайна.
"""

__version__ = "0.1.0"
