"""
Backtest Report

Terminal consumer of finalized statistics. Produces a dictionary summary and,
when an output directory is configured, writes it as JSON plus an HTML page
rendered with Jinja2.
"""

from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional
import json
import logging

from jinja2 import Template

from ..core.errors import BacktestStateError
from ..core.interfaces import IReportSink

logger = logging.getLogger(__name__)


REPORT_TEMPLATE = """
<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <title>{{ title }}</title>
    <style>
        body { font-family: Arial, sans-serif; margin: 40px; line-height: 1.6; }
        .header { text-align: center; border-bottom: 2px solid #333; padding-bottom: 20px; }
        .section { margin: 30px 0; }
        .metric { display: inline-block; margin: 10px; padding: 15px; border: 1px solid #ddd; border-radius: 5px; }
        table { width: 100%; border-collapse: collapse; margin: 20px 0; }
        th, td { border: 1px solid #ddd; padding: 8px; text-align: left; }
        th { background-color: #f2f2f2; }
        .positive { color: green; }
        .negative { color: red; }
    </style>
</head>
<body>
    <div class="header">
        <h1>{{ title }}</h1>
        {% if goal %}<p>{{ goal }}</p>{% endif %}
        <p>Strategy: {{ statistics.strategy_name }}</p>
        <p>Generated on {{ generated_at }}</p>
    </div>

    <div class="section">
        <h2>Summary</h2>
        {% set overall = statistics.results.overall %}
        <div class="metric">
            <strong>Total Return:</strong>
            <span class="{% if overall.performance.total_return > 0 %}positive{% else %}negative{% endif %}">
                {{ "%.2f"|format(overall.performance.total_return * 100) }}%
            </span>
        </div>
        <div class="metric">
            <strong>Final Equity:</strong> {{ "%.8f"|format(overall.performance.final_equity) }}
        </div>
        <div class="metric">
            <strong>Sharpe Ratio:</strong> {{ "%.2f"|format(overall.performance.sharpe_ratio) }}
        </div>
        <div class="metric">
            <strong>Max Drawdown:</strong>
            <span class="negative">{{ "%.2f"|format(overall.risk.max_drawdown * 100) }}%</span>
        </div>
        <div class="metric">
            <strong>Orders:</strong> {{ overall.trades.buy_orders }} buy / {{ overall.trades.sell_orders }} sell
            / {{ overall.trades.rejected_orders }} rejected
        </div>
    </div>

    <div class="section">
        <h2>Pairs</h2>
        <table>
            <tr>
                <th>Pair</th><th>Total Return</th><th>Max Drawdown</th><th>Sharpe</th>
                <th>Buys</th><th>Sells</th><th>Rejected</th><th>Final Equity</th>
            </tr>
            {% for name, metrics in statistics.results.per_pair.items() %}
            <tr>
                <td>{{ name }}</td>
                <td>{{ "%.2f"|format(metrics.performance.total_return * 100) }}%</td>
                <td>{{ "%.2f"|format(metrics.risk.max_drawdown * 100) }}%</td>
                <td>{{ "%.2f"|format(metrics.performance.sharpe_ratio) }}</td>
                <td>{{ metrics.trades.buy_orders }}</td>
                <td>{{ metrics.trades.sell_orders }}</td>
                <td>{{ metrics.trades.rejected_orders }}</td>
                <td>{{ "%.8f"|format(metrics.performance.final_equity) }}</td>
            </tr>
            {% endfor %}
        </table>
    </div>
</body>
</html>
"""


class ReportData(IReportSink):
    """Collects finalized statistics and renders them."""

    def __init__(self, output_path: Optional[str] = None, nickname: str = "", goal: str = ""):
        """
        Args:
            output_path: Directory for report files; None keeps the report in memory
            nickname: Backtest name used in the title and file names
            goal: Free-text description shown in the report header
        """
        self.output_path = Path(output_path) if output_path else None
        self.nickname = nickname
        self.goal = goal
        self.statistics = None
        self.output_files: List[str] = []

    def add_statistics(self, statistics) -> None:
        """
        Accept the statistics of a completed run.

        Raises:
            BacktestStateError: statistics were never finalized
        """
        if statistics is None or not getattr(statistics, 'finalized', False):
            raise BacktestStateError("cannot report on unfinalized statistics")
        self.statistics = statistics

    def to_dict(self) -> Dict[str, Any]:
        if self.statistics is None:
            raise BacktestStateError("no statistics added to report")
        return {
            'nickname': self.nickname,
            'goal': self.goal,
            'statistics': self.statistics.to_dict(),
        }

    def generate_report(self) -> Dict[str, Any]:
        """
        Build the report and write files when an output directory is set.

        Returns:
            Report dictionary
        """
        report = self.to_dict()
        if self.output_path is None:
            return report

        self.output_path.mkdir(parents=True, exist_ok=True)
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        base_name = f"{self.nickname or 'backtest'}_{timestamp}".replace(" ", "_")

        json_path = self.output_path / f"{base_name}.json"
        with open(json_path, 'w', encoding='utf-8') as f:
            json.dump(report, f, indent=2, default=str)

        html_path = self.output_path / f"{base_name}.html"
        html_content = Template(REPORT_TEMPLATE).render(
            title=self.nickname or "Backtest Report",
            goal=self.goal,
            statistics=report['statistics'],
            generated_at=datetime.now().strftime('%Y-%m-%d %H:%M:%S'),
        )
        with open(html_path, 'w', encoding='utf-8') as f:
            f.write(html_content)

        self.output_files = [str(json_path), str(html_path)]
        logger.info(f"Report generated: {self.output_files}")
        return report
