"""Traffic sampling: dump model, strategy, persistence and network filter."""