"""Analysis modules: time-series aggregation, wave averages, key stages."""
