"""NUMA-aware node resource topology: topology objects, filtering, scoring strategies and the TopologyMatch plugin."""