"""
Airflow DAGs Package

Contains the DAG definitions for the distress lead pipeline.

DAGs:
- agent_cycle: Reasoning, PropertyRadar seed, crawlers, ATTOM delta (every 4 hours)
"""
