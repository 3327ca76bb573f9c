"""Type definitions for leasedfilelock."""

import os
import uuid
from typing import TypeAlias

# Anything that can name the file being guarded
StrPath: TypeAlias = str | os.PathLike[str]

# Identifier written as the first line of a lock record
OwnerId: TypeAlias = uuid.UUID
