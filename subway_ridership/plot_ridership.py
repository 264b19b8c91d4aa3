"""Chart smoothed subway ridership against NYC COVID-19 case counts."""

from __future__ import annotations

import logging
from pathlib import Path

import matplotlib

matplotlib.use("Agg")
import matplotlib.dates as mdates  # noqa: E402
import matplotlib.pyplot as plt  # noqa: E402
import pandas as pd  # noqa: E402

logger = logging.getLogger(__name__)

INSET_START = "2020-03-01"
INSET_END = "2020-04-30"


def plot_ridership_vs_cases(enriched: pd.DataFrame, output_file: Path) -> Path:
    """Save a two-axis chart of 7-day average entries and cases with a spring-2020 inset.

    NaN averages at the start of the series are drawn as gaps.
    """
    fig, ax = plt.subplots(figsize=(14, 7))

    ax.plot(enriched['DATE'], enriched['ENTRIES_7DAY_AVG'], color='#0039A6', linewidth=2,
            label='Subway entries (7-day avg)')
    ax.plot(enriched['DATE'], enriched['EXITS_7DAY_AVG'], color='#6CBE45', linewidth=1,
            alpha=0.7, label='Subway exits (7-day avg)')
    ax.set_ylabel('Daily turnstile count')
    ax.xaxis.set_major_formatter(mdates.DateFormatter('%b %Y'))

    cases_ax = ax.twinx()
    cases_ax.plot(enriched['DATE'], enriched['CASE_COUNT_7DAY_AVG'], color='#EE352E', linewidth=2,
                  label='COVID-19 cases (7-day avg)')
    cases_ax.set_ylabel('Daily reported cases')

    lines = list(ax.get_lines()) + list(cases_ax.get_lines())
    ax.legend(lines, [line.get_label() for line in lines], loc='upper right')
    ax.set_title('NYC Subway Ridership vs. COVID-19 Cases')
    ax.grid(True, alpha=0.3)

    window = enriched[(enriched['DATE'] >= INSET_START) & (enriched['DATE'] <= INSET_END)]
    if not window.empty:
        inset = ax.inset_axes([0.08, 0.08, 0.3, 0.3])
        inset.plot(window['DATE'], window['ENTRIES'], color='#0039A6', linewidth=1)
        inset.set_title('Daily entries, Mar-Apr 2020', fontsize=9)
        inset.xaxis.set_major_formatter(mdates.DateFormatter('%m/%d'))
        inset.tick_params(labelsize=7)

    output_file.parent.mkdir(parents=True, exist_ok=True)
    plt.tight_layout()
    plt.savefig(output_file, dpi=150, bbox_inches='tight')
    plt.close(fig)

    logger.info(f"Saved chart to {output_file}")
    return output_file
