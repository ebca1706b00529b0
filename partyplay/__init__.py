# partyplay
# Copyright (C) 2024-2026 Markus Kirsten
# SPDX-License-Identifier: GPL-3.0-or-later
#
# Attribution required — see LICENSE, Section 7(b).

"""partyplay — collaborative playback of a shared song queue."""

from .player import Player

__version__ = "0.4.0"

__all__ = ["Player", "__version__"]
