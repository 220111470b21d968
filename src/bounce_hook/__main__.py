# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Allow ``python -m bounce_hook``."""

from .cli import main

if __name__ == "__main__":
    main()
