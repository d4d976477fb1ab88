"""Engine services: analysis, budgets, build history and watching."""
