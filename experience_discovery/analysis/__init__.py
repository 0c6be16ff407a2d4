"""Analysis Package - statistics, time buckets, geometry and text helpers shared by the tools."""
