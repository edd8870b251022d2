# scenario.py
"""
Prepare simulated scenarios for the OS job scheduler.
Each scenario is a dict of parameters to pass into simulate(**params).
"""

# 1. Policy comparison group: same workload and hardware, FCFS vs round robin
scenarios_policy = [
    {
        "name": "POL1_fcfs_single",
        "num_processors": 1,
        "num_job_classes": 2,
        "policy": "fcfs",
        "total_jobs": 50,
        "buffer_capacity": 10,
    },
    {
        "name": "POL2_rr_single",
        "num_processors": 1,
        "num_job_classes": 2,
        "policy": "rr",
        "timeslice": 8.0,
        "affinity": False,
        "total_jobs": 50,
        "buffer_capacity": 10,
    },
    {
        "name": "POL3_fcfs_dual",
        "num_processors": 2,
        "num_job_classes": 2,
        "policy": "fcfs",
        "total_jobs": 50,
        "buffer_capacity": 10,
    },
    {
        "name": "POL4_rr_dual",
        "num_processors": 2,
        "num_job_classes": 2,
        "policy": "rr",
        "timeslice": 8.0,
        "affinity": False,
        "total_jobs": 50,
        "buffer_capacity": 10,
    },
]

# 2. Timeslice group
scenarios_timeslice = [
    {
        "name": "TS1_small_slice",
        "num_processors": 2,
        "num_job_classes": 2,
        "policy": "rr",
        "timeslice": 2.0,  # many preemptions
        "affinity": False,
        "total_jobs": 50,
        "buffer_capacity": 10,
    },
    {
        "name": "TS2_large_slice",
        "num_processors": 2,
        "num_job_classes": 2,
        "policy": "rr",
        "timeslice": 50.0,  # long jobs fit in one slice, behaves like FCFS
        "affinity": False,
        "total_jobs": 50,
        "buffer_capacity": 10,
    },
]

# 3. Processor affinity group
scenarios_affinity = [
    {
        "name": "AFF1_no_affinity",
        "num_processors": 2,
        "num_job_classes": 2,
        "policy": "rr",
        "timeslice": 8.0,
        "affinity": False,
        "total_jobs": 50,
        "buffer_capacity": 10,
    },
    {
        "name": "AFF2_affinity_penalty",
        "num_processors": 2,
        "num_job_classes": 2,
        "policy": "rr",
        "timeslice": 8.0,
        "affinity": True,
        "affinity_penalty": 1.0,
        "total_jobs": 50,
        "buffer_capacity": 10,
    },
]


# 4. Processor count group
def make_processor_scenarios():
    res = []
    for c in [1, 2, 4]:
        for policy in ["fcfs", "rr"]:
            res.append(
                {
                    "name": f"Procs_{c}_{policy}",
                    "num_processors": c,
                    "num_job_classes": 2,
                    "policy": policy,
                    "timeslice": 8.0,
                    "affinity": policy == "rr",
                    "total_jobs": 50,
                    "buffer_capacity": 10,
                }
            )
    return res


scenarios_processors = make_processor_scenarios()

# Combine all for convenience
ALL_SCENARIOS = (
    scenarios_policy + scenarios_timeslice + scenarios_affinity + scenarios_processors
)
