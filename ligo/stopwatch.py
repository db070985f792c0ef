"""
MIT License
Copyright (c) 2018 Free TNT
Permission is hereby granted, free of charge, to any person obtaining a copy
of this software and associated documentation files (the "Software"), to deal
in the Software without restriction, including without limitation the rights
to use, copy, modify, merge, publish, distribute, sublicense, and/or sell
copies of the Software, and to permit persons to whom the Software is
furnished to do so, subject to the following conditions:
The above copyright notice and this permission notice shall be included in all
copies or substantial portions of the Software.
THE SOFTWARE IS PROVIDED "AS IS", WITHOUT WARRANTY OF ANY KIND, EXPRESS OR
IMPLIED, INCLUDING BUT NOT LIMITED TO THE WARRANTIES OF MERCHANTABILITY,
FITNESS FOR A PARTICULAR PURPOSE AND NONINFRINGEMENT. IN NO EVENT SHALL THE
AUTHORS OR COPYRIGHT HOLDERS BE LIABLE FOR ANY CLAIM, DAMAGES OR OTHER
LIABILITY, WHETHER IN AN ACTION OF CONTRACT, TORT OR OTHERWISE, ARISING FROM,
OUT OF OR IN CONNECTION WITH THE SOFTWARE OR THE USE OR OTHER DEALINGS IN THE
SOFTWARE.
"""
import time
from typing import Optional


# adapted from https://github.com/ravener/stopwatch.py/blob/master/stopwatch/stopwatch.py
class Stopwatch:
    """Measures elapsed wall-clock time of a search; starts running when created."""

    def __init__(self) -> None:
        self._start: int = time.perf_counter_ns()

    def seconds(self) -> float:
        return (time.perf_counter_ns() - self._start) / 1_000_000_000.0

    def exceeded(self, seconds: Optional[float]) -> bool:
        """Whether more than `seconds` have elapsed; always False if `seconds` is None."""
        return seconds is not None and self.seconds() > seconds

