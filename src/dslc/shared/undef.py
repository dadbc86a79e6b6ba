"""
Undef marker

Returned by the value oracle when a name has no compile-time value, and
stored as the definition site of a local variable assigned more than once.
"""


class _UndefType:
    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "Undef"

    def __reduce__(self):
        return (_UndefType, ())


Undef = _UndefType()
