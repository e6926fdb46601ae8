"""Transforms that rewrite a register map in place, and parsing of transform configurations."""