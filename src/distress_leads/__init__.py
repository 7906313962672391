"""
Distress Leads

Pipeline from harvested distress signals to guarded, scored leads.
"""
