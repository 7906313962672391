"""
FastAPI REST API for the distress lead pipeline

Provides endpoints for:
- Inbound pushes and webhook batches
- Lead reads and guarded status changes
- Manual property corrections
- Predictive scoring, calibration and replay
- The scheduled agent cycle trigger
"""
