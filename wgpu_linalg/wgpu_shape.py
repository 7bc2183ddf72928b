"""Host-side float32 arrays that operations can resize in place."""

import numpy as np


class Shape:
    """A row-major float32 vector or matrix owned by the caller.

    Elementwise operations grow the backing array to the padded working size
    for the duration of a call and truncate it back afterwards, so the array
    object held by a ``Shape`` may be replaced by an operation.
    """

    def __init__(self, data, rows=None, cols=None):
        """Initialize a shape.

        Args:
            data: anything numpy can turn into a float32 array (copied)
            rows: logical row count (defaults to 1)
            cols: logical column count (defaults to ``len(data) // rows``)
        """
        self._data = np.array(data, dtype=np.float32).ravel()
        if rows is None:
            rows = 1
        if cols is None:
            cols = self._data.size // rows if rows else 0
        self.rows = rows
        self.cols = cols

    # ---- Properties ----
    @property
    def shape(self):
        """Logical ``(rows, cols)``."""
        return (self.rows, self.cols)

    @property
    def nbytes(self):
        """Size of the backing array in bytes."""
        return self._data.nbytes

    def numel(self):
        """Number of logical elements."""
        return self.rows * self.cols

    def __len__(self):
        return self._data.size

    def __repr__(self):
        return f"Shape(rows={self.rows}, cols={self.cols}, len={len(self)})"

    # ---- Storage ----
    def resize(self, n):
        """Grow or truncate the backing array to ``n`` elements.

        The common prefix keeps its values. Elements exposed by growing are
        uninitialized. Returns the new length.
        """
        current = self._data.size
        if n < current:
            self._data = self._data[:n].copy()
        elif n > current:
            grown = np.empty(n, dtype=np.float32)
            grown[:current] = self._data
            self._data = grown
        return self._data.size

    def ravel(self):
        """Flat view of the backing array (no copy)."""
        return self._data

    def numpy(self):
        """Copy of the logical contents as a ``(rows, cols)`` array."""
        return self._data[: self.numel()].reshape(self.rows, self.cols).copy()

    # ---- Factory Methods ----
    @staticmethod
    def from_numpy(arr):
        """Create a shape from a 1-D or 2-D numpy array.

        A 1-D array becomes a ``1 x n`` row vector. float64 and integer input is
        converted to float32.
        """
        arr = np.asarray(arr)
        if arr.ndim == 1:
            rows, cols = 1, arr.shape[0]
        elif arr.ndim == 2:
            rows, cols = arr.shape
        else:
            raise ValueError(f"Shape needs a 1-D or 2-D array, got {arr.ndim}-D")
        return Shape(arr, rows, cols)

    @staticmethod
    def empty(rows, cols):
        """Uninitialized ``rows x cols`` shape, e.g. a reduction destination."""
        return Shape(np.empty(rows * cols, dtype=np.float32), rows, cols)


def create_shape(n, fill_value, rows=None, cols=None):
    """Allocate a new shape of ``n`` elements all set to ``fill_value``.

    Without ``rows``/``cols`` the result is a ``1 x n`` row vector.
    """
    if rows is None and cols is None:
        rows, cols = 1, n
    elif rows is None:
        rows = n // cols
    elif cols is None:
        cols = n // rows
    return Shape(np.full(n, fill_value, dtype=np.float32), rows, cols)
