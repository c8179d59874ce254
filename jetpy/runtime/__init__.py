from jetpy.runtime.parallel import ParallelReducer, ParallelStats
