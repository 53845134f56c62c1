import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1].parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


@pytest.fixture
def reference_aggregation():
    from usage_billing.aggregation import AggregationResult

    # 4 events; the 4th cumulative total (800) is omitted from the history
    return AggregationResult.build(total_usage=800, event_count=4, running_totals=[50, 150, 400])
