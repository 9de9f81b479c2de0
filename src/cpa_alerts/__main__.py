from cpa_alerts.cli import run

run()
