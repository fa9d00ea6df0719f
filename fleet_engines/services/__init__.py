"""Pure calculation services for driver incentives and employee scorecards."""
