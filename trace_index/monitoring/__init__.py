# © 2026 Pallab Basu Roy. All rights reserved.
# This source code is proprietary and confidential.
# Unauthorized copying, modification, or commercial use is strictly prohibited.

from trace_index.monitoring.write_stats import WriteStats

__all__ = ["WriteStats"]
