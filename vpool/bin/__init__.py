"""
Collection of scripts to be installed as executables on the target system

The following conventions apply to command definitions:

 * The command definition has to be contained in a single module called the
   same as the command itself;

 * Each module defines a function called 'main' which takes no arguments and is
   responsible for the command line parsing and the command dispatching;

 * After having defined the command, add it to the 'entry-points.ini' file at
   the root of the package directory, using the following format::

       <command-name> = vpool.bin.<command-name>:main

   This directive has to be placed in the 'console_scripts' section.

"""
