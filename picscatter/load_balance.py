# Copyright 2024, picscatter contributors
# License: 3-Clause-BSD-LBNL
"""
This file is part of picscatter (Particle-In-Cell scatter layer)
It defines the accounting of the computational cost of the deposition,
as consumed by a load-balancing strategy.
"""
import time
import threading
import numpy as np
from picscatter.utils.cuda import cuda_installed
if cuda_installed:
    import cupy

# Supported strategies to measure the cost of a deposition
cost_algos = ['disabled', 'timers', 'heuristic', 'gpuclock']

class CostLedger(object):
    """
    Class that accumulates the computational cost of each box
    (i.e. each local patch of the grid) over a number of depositions.

    The ledger may be shared between several threads; each addition
    is performed under a lock.
    """
    def __init__( self, n_boxes=1 ):
        """
        Parameters
        ----------
        n_boxes : int, optional
            Number of boxes whose cost is recorded
        """
        self.costs = np.zeros( n_boxes, dtype=np.float64 )
        self._lock = threading.Lock()

    def add( self, box, value ):
        """Add `value` to the cost of the box `box`"""
        with self._lock:
            self.costs[box] += value

    def reset( self ):
        """Set the cost of all boxes to 0"""
        with self._lock:
            self.costs[:] = 0.

    def __getitem__( self, box ):
        return self.costs[box]

    def __len__( self ):
        return len(self.costs)

def check_cost_algo( cost_algo, use_cuda ):
    """
    Raise a ValueError if `cost_algo` cannot be used

    Parameters
    ----------
    cost_algo : string
        One of 'disabled', 'timers', 'heuristic' or 'gpuclock'

    use_cuda : bool
        Whether the deposition runs on the GPU
    """
    if cost_algo not in cost_algos:
        raise ValueError("`cost_algo` should be one of %s (got '%s')."
                         %(cost_algos, cost_algo))
    if cost_algo == 'gpuclock' and not use_cuda:
        raise ValueError("The 'gpuclock' cost measurement requires "
            "the deposition to run on the GPU (`use_cuda=True`, with "
            "a working CUDA installation).")

class CostMeasurement(object):
    """
    Context manager that measures the cost of one deposition call,
    and adds it (once) to the corresponding entry of a cost ledger.

    - 'disabled' (or no ledger): nothing is measured
    - 'timers': wall-clock time of the whole call (in seconds)
    - 'heuristic': estimated number of grid updates
      (number of particles times number of points of the stencil)
    - 'gpuclock': time (in seconds) measured with CUDA events on the
      current stream; the stream is synchronized before the addition
    """
    def __init__( self, cost_algo, ledger, box, n_particles=0,
                  n_stencil_points=1, ncomp=1 ):
        self.cost_algo = cost_algo
        self.ledger = ledger
        self.box = box
        self.n_particles = n_particles
        self.n_stencil_points = n_stencil_points
        self.ncomp = ncomp
        self.active = (ledger is not None) and (cost_algo != 'disabled')

    def __enter__( self ):
        if not self.active:
            return self
        if self.cost_algo == 'timers':
            self.start = time.perf_counter()
        elif self.cost_algo == 'gpuclock':
            self.start_event = cupy.cuda.Event()
            self.stop_event = cupy.cuda.Event()
            self.start_event.record()
        return self

    def __exit__( self, exc_type, exc_value, traceback ):
        # Nothing is recorded if the deposition failed
        if not self.active or exc_type is not None:
            return False
        if self.cost_algo == 'timers':
            cost = time.perf_counter() - self.start
        elif self.cost_algo == 'heuristic':
            cost = float( self.n_particles*self.n_stencil_points*self.ncomp )
        else:
            self.stop_event.record()
            self.stop_event.synchronize()
            # Elapsed time, converted from milliseconds to seconds
            cost = 1.e-3*cupy.cuda.get_elapsed_time(
                self.start_event, self.stop_event )
        self.ledger.add( self.box, cost )
        return False
