"""Load-aware scoring from load-watcher metrics: target load packing and load variation risk balancing."""