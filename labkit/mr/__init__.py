"""A small MapReduce framework: master, worker, message types, sample applications and commands."""