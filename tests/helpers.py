"""Test-only helpers shared by the test modules."""

from __future__ import annotations

import sys

from platcov.errors import UploadError
from platcov.uploader import UploadResult

CARGO_LOCK = """\
# This file is automatically @generated by Cargo.
version = 4

[[package]]
name = "rain"
version = "0.3.0"
"""

# one library file at 50%, one binary entry point at 0%
LCOV_REPORT = """\
TN:
SF:/work/rain/src/rain/rain_drop.rs
DA:1,1
DA:2,1
DA:3,0
DA:4,0
LF:4
LH:2
end_of_record
SF:/work/rain/src/bin/main.rs
DA:1,0
DA:2,0
DA:3,0
DA:4,0
DA:5,0
DA:6,0
LF:6
LH:0
end_of_record
"""

FAKE_LLVM_COV = '''\
import os
import sys

args = sys.argv[1:]
with open("cov_args.txt", "w") as f:
    f.write("\\n".join(args))
out = args[args.index("--output-path") + 1]
code = int(os.environ.get("FAKE_COV_EXIT", "0"))
if code == 0 and os.environ.get("FAKE_COV_NO_REPORT") != "1":
    with open(out, "w") as f:
        f.write(os.environ["FAKE_COV_REPORT"])
sys.exit(code)
'''


class FakeUploader:
    """Stands in for CodecovClient; counts upload attempts."""

    def __init__(self, error: UploadError | None = None):
        self.error = error
        self.calls: list[dict] = []
        self.token = None
        self.verbose = None

    def upload(self, files, **kwargs):
        self.calls.append({"files": list(files), **kwargs})
        if self.error is not None:
            raise self.error
        return UploadResult(report_url="https://codecov.example/report/1", files=list(files))

    def factory(self, token, verbose):
        self.token = token
        self.verbose = verbose
        return self


def py_cmd(code: str) -> str:
    """Shell command running a python snippet with the current interpreter."""
    return f'"{sys.executable}" -c "{code}"'
